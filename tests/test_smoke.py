"""
Smoke test: ensure every package module imports cleanly.

This test only imports modules to validate packaging and basic syntax.
"""
import importlib


def test_import_all_submodules():
    modules = [
        "src.bridge",
        "src.bridge.config",
        "src.bridge.command_codec",
        "src.bridge.terminal",
        "src.bridge.polling",
        "src.bridge.compiler",
        "src.bridge.mt4_bridge",
        "src.bridge.simulator",
        "src.tools",
        "src.tools.config",
        "src.tools.bridge_client",
        "src.tools.workspace",
        "src.tools.handlers",
        "src.tools.server",
        "src.utils",
        "src.utils.logging_utils",
        "core.bridge_server",
    ]

    for m in modules:
        importlib.import_module(m)

    assert True
