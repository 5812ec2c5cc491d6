"""HTTP client for the MT4 bridge, used by the MCP tool handlers."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class BridgeClientError(RuntimeError):
    """The bridge could not be reached or answered with an error status."""


class BridgeClient:
    """GET when there is no body, POST JSON otherwise."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        timeout: float = 10.0,
        token: str = "",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["X-Bridge-Token"] = token

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def call(self, endpoint: str, data: Optional[Dict[str, Any]] = None, *, timeout: Optional[float] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        logger.info(f"Making API call to: {url}")
        if data is not None:
            logger.debug(f"Request data: {json.dumps(data)}")

        try:
            if data is not None:
                response = self.session.post(url, json=data, timeout=timeout or self.timeout)
            else:
                response = self.session.get(url, timeout=timeout or self.timeout)
        except requests.RequestException as e:
            raise BridgeClientError(f"Failed to connect to MT4 at {self.host}:{self.port}: {e}")

        logger.info(f"Response status: {response.status_code}")
        if not response.ok:
            message = f"MT4 API Error: Request failed with status code {response.status_code} ({response.reason})"
            detail = _error_detail(response)
            if detail:
                message = f"{message}: {detail}"
            raise BridgeClientError(message)

        try:
            return response.json()
        except ValueError:
            raise BridgeClientError(f"MT4 API Error: invalid JSON response from {endpoint}")


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or "")
    return ""


__all__ = ["BridgeClient", "BridgeClientError"]
