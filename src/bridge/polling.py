"""
Bounded polling for result files written by the terminal EA.

After a command file is written the EA picks it up on its own timer and
answers by rewriting a result file. `wait_for_result` polls that file with
exponential backoff until a fresh, decodable result appears or the budget
runs out. Freshness is judged against the (mtime, size) signature seen
just before the command was written, so the previous command's result is
never mistaken for the new one.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
import logging
import time

from .command_codec import decode_result
from .config import PollPolicy
from .terminal import file_signature

logger = logging.getLogger(__name__)


def wait_for_result(
    path: Path,
    previous: Optional[Tuple[int, int]],
    policy: PollPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[Dict[str, Any]]:
    """Poll `path` until it holds a new result; return it decoded or None."""
    deadline = clock() + policy.timeout
    delay = policy.initial_delay
    attempt = 0
    while True:
        attempt += 1
        sig = file_signature(path)
        if sig is not None and sig != previous and sig[1] > 0:
            try:
                result = decode_result(path.read_text(encoding="utf-8"))
            except ValueError as e:
                # EA may still be writing; keep polling
                logger.warning(f"Unreadable result in {path.name} (attempt {attempt}): {e}")
            except FileNotFoundError:
                pass
            else:
                logger.info(f"Result received from {path.name} after {attempt} poll(s)")
                return result

        remaining = deadline - clock()
        if remaining <= 0:
            logger.warning(f"No fresh result in {path.name} within {policy.timeout}s")
            return None
        sleep(min(delay, remaining))
        delay = min(delay * policy.backoff, policy.max_delay)


__all__ = ["wait_for_result"]
