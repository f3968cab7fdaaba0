"""Utilities for working with SSH sessions to the Windows host."""

from __future__ import annotations

import base64
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import paramiko

from .config.defaults import COMMAND_TIMEOUT, DEFAULT_SSH_TIMEOUT
from .config.settings import ClientSettings
from .logging_utils import get_logger

LOGGER = get_logger(__name__)

POWERSHELL_PREFIX = (
    "powershell.exe -NoProfile -NonInteractive -ExecutionPolicy Bypass -EncodedCommand"
)


class SSHKeyLoadError(RuntimeError):
    """Raised when a private key cannot be parsed."""


class SSHConnectError(RuntimeError):
    """Raised when the SSH session cannot be established."""


@dataclass
class CommandResult:
    """远程命令的执行结果。Result of one remote command."""

    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def output_tail(self, limit: int = 600) -> str:
        return (self.stderr or self.stdout)[-limit:].strip()


def _candidate_keys() -> Iterable[type[paramiko.PKey]]:
    """Return supported Paramiko key classes in preferred order."""

    return (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def load_private_key(path: str | os.PathLike[str]) -> paramiko.PKey:
    """Load a private key from ``path``.

    Keys are attempted in the order Ed25519 → ECDSA → RSA.  DSA keys are
    deliberately unsupported because Paramiko 3.x removed ``DSSKey``.
    """

    key_path = Path(path).expanduser()
    if key_path.is_dir():
        raise SSHKeyLoadError(f"给定的私钥路径是目录：{key_path}")

    if not key_path.exists():
        raise SSHKeyLoadError(f"私钥文件不存在：{key_path}")

    errors: list[str] = []
    for key_cls in _candidate_keys():
        try:
            return key_cls.from_private_key_file(str(key_path))
        except paramiko.PasswordRequiredException as exc:
            raise SSHKeyLoadError("私钥受口令保护，请先解锁或改用密码登录。") from exc
        except (paramiko.SSHException, ValueError) as exc:
            # Binary or non-UTF-8 files surface as UnicodeDecodeError.
            errors.append(str(exc))
        except OSError as exc:
            raise SSHKeyLoadError(f"无法读取私钥文件 {key_path}: {exc}") from exc

    joined = "; ".join(filter(None, errors)) or "未知错误"
    raise SSHKeyLoadError(f"无法解析私钥文件 {key_path}: {joined}")


def encode_powershell(script: str) -> str:
    """Wrap ``script`` as a ``powershell.exe -EncodedCommand`` invocation.

    Windows OpenSSH hands the command to ``cmd.exe`` by default, which mangles
    quotes, ``$`` and newlines.  The base64 UTF-16LE form passes through any
    shell untouched.
    """

    encoded = base64.b64encode(script.encode("utf-16-le")).decode("ascii")
    return f"{POWERSHELL_PREFIX} {encoded}"


class RemoteSession:
    """A blocking Paramiko session to the Windows host.

    Use as a context manager so the connection is closed even when a step
    fails::

        with RemoteSession(settings.client) as session:
            session.run_powershell("Get-Service WireGuard*")
    """

    def __init__(
        self,
        client_settings: ClientSettings,
        *,
        timeout: int = DEFAULT_SSH_TIMEOUT,
        command_timeout: int = COMMAND_TIMEOUT,
    ) -> None:
        self.settings = client_settings
        self.timeout = timeout
        self.command_timeout = command_timeout
        self._client: Optional[paramiko.SSHClient] = None

    def connect(self) -> "RemoteSession":
        settings = self.settings
        pkey: Optional[paramiko.PKey] = None
        if settings.key_path:
            pkey = load_private_key(settings.key_path)

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        LOGGER.info("Connecting to %s@%s:%s", settings.username, settings.host, settings.port)
        try:
            client.connect(
                settings.host,
                port=settings.port,
                username=settings.username,
                password=settings.password,
                pkey=pkey,
                allow_agent=False,
                look_for_keys=False,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
            )
        except paramiko.AuthenticationException as exc:
            client.close()
            raise SSHConnectError(
                "SSH 认证失败，请检查用户名、密码/私钥是否正确。"
            ) from exc
        except (paramiko.SSHException, socket.error) as exc:
            client.close()
            raise SSHConnectError(
                f"无法建立 SSH 连接：{exc}. 请确认主机可达、OpenSSH Server 已启用且防火墙放行 {settings.port} 端口。"
            ) from exc

        self._client = client
        return self

    def run(self, command: str) -> CommandResult:
        """Run ``command`` and block until it exits."""

        if self._client is None:
            raise SSHConnectError("内部错误：SSH 会话尚未建立。")
        try:
            stdin, stdout, stderr = self._client.exec_command(command, timeout=self.command_timeout)
            stdin.channel.shutdown_write()
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error) as exc:
            raise SSHConnectError(f"远端命令执行中断：{exc}") from exc
        LOGGER.debug("Remote command exited with %s", exit_status)
        return CommandResult(exit_status, out, err)

    def run_powershell(self, script: str) -> CommandResult:
        return self.run(encode_powershell(script))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            LOGGER.info("SSH session closed")

    def __enter__(self) -> "RemoteSession":
        if self._client is None:
            self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = [
    "CommandResult",
    "RemoteSession",
    "SSHConnectError",
    "SSHKeyLoadError",
    "encode_powershell",
    "load_private_key",
]
