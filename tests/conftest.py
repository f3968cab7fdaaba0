"""pytest 配置和共享 fixtures。pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest

from wgremote.config.settings import TunnelSettings, settings_from_dict
from wgremote.logging_utils import ROOT_LOGGER_NAME
from wgremote.ssh_utils import POWERSHELL_PREFIX, CommandResult

CLIENT_PRIVATE_KEY = "yAnz5TF+lXXJte14tji3zlMNq+hd2rYUIgJBgB3fBmk="
SERVER_PUBLIC_KEY = "xTIBA5rboUvnH4htodjb6e697QjLERt1NAB4mZqp8Dg="


def decode_powershell(command: str) -> str:
    """还原 -EncodedCommand 中的脚本。Decode the script from an encoded command line."""
    assert command.startswith(POWERSHELL_PREFIX)
    encoded = command[len(POWERSHELL_PREFIX):].strip()
    return base64.b64decode(encoded).decode("utf-16-le")


def classify_script(script: str) -> str:
    """Map a provisioning script to its step name."""
    if "Test-Path" in script:
        return "check"
    if "msiexec" in script:
        return "install"
    if "WriteAllBytes" in script:
        return "write"
    if "/installtunnelservice" in script:
        return "start"
    if "WaitForStatus" in script:
        return "status"
    if " show " in script:
        return "show"
    return "unknown"


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(0, stdout, "")


def failed(stderr: str = "boom", exit_status: int = 1) -> CommandResult:
    return CommandResult(exit_status, "", stderr)


class FakeSession:
    """记录脚本并返回预设结果的假会话。Recording stand-in for :class:`RemoteSession`.

    ``responses`` maps a step name to a list of results consumed in order;
    the last result repeats once the list is exhausted.
    """

    def __init__(self, responses: Dict[str, List[CommandResult]]) -> None:
        self.responses = {step: list(results) for step, results in responses.items()}
        self.steps: List[str] = []
        self.scripts: List[str] = []
        self.client_settings: Any = None
        self.timeout: Optional[int] = None
        self.entered = False
        self.closed = False

    def __call__(self, client_settings: Any, *, timeout: int) -> "FakeSession":
        self.client_settings = client_settings
        self.timeout = timeout
        return self

    def __enter__(self) -> "FakeSession":
        self.entered = True
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed = True

    def run(self, command: str) -> CommandResult:
        return self.run_powershell(decode_powershell(command))

    def run_powershell(self, script: str) -> CommandResult:
        step = classify_script(script)
        self.steps.append(step)
        self.scripts.append(script)
        queue = self.responses.get(step)
        if not queue:
            return ok()
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def script_for(self, step: str) -> str:
        return self.scripts[self.steps.index(step)]


@pytest.fixture(autouse=True)
def reset_wgremote_logger() -> Generator[None, None, None]:
    """每个测试后移除日志 handler。Detach handlers so each test starts clean."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def settings_payload() -> Dict[str, Any]:
    """示例配置 fixture。Sample settings payload."""
    return {
        "client": {
            "host": "192.0.2.10",
            "username": "Administrator",
            "password": "s3cret",
            "tunnel_name": "wg0",
            "private_key": CLIENT_PRIVATE_KEY,
            "address": "10.6.0.3/32",
            "dns": ["1.1.1.1"],
        },
        "server": {
            "endpoint": "198.51.100.1:51820",
            "public_key": SERVER_PUBLIC_KEY,
        },
    }


@pytest.fixture
def settings(settings_payload: Dict[str, Any]) -> TunnelSettings:
    return settings_from_dict(settings_payload, env={})


@pytest.fixture
def settings_file(tmp_path: Path, settings_payload: Dict[str, Any]) -> Path:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps(settings_payload), encoding="utf-8")
    return path


@pytest.fixture
def fake_session() -> Callable[..., FakeSession]:
    """假会话工厂 fixture。Factory for :class:`FakeSession` objects."""

    def factory(**responses: List[CommandResult]) -> FakeSession:
        return FakeSession(responses)

    return factory
