"""Settings record for one provisioning run.

The settings file is JSON with two groups::

    {
      "client": {"host": ..., "username": ..., "private_key": ..., "address": ...},
      "server": {"endpoint": ..., "public_key": ...}
    }

``client`` describes how to reach the Windows host over SSH and which
address the tunnel gets there; ``server`` describes the WireGuard peer the
tunnel connects to.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .defaults import (
    DEFAULT_ALLOWED_IPS,
    DEFAULT_CLIENT_MTU,
    DEFAULT_DNS_LIST,
    DEFAULT_INSTALL_DIR,
    DEFAULT_INSTALLER_URL,
    DEFAULT_KEEPALIVE_SECONDS,
    DEFAULT_REMOTE_CONFIG_DIR,
    DEFAULT_SSH_PORT,
    DEFAULT_TUNNEL_NAME,
    ENV_SSH_KEY,
    ENV_SSH_PASSWORD,
    ENV_SSH_USER,
    TUNNEL_SERVICE_PREFIX,
)

# WireGuard for Windows rejects tunnel names outside this set.
_TUNNEL_NAME_RE = re.compile(r"^[A-Za-z0-9_=+.-]{1,32}$")


class ConfigError(RuntimeError):
    """Raised when the settings file is missing or invalid."""


@dataclass
class ClientSettings:
    """Windows 主机的 SSH 凭据与隧道地址。SSH credentials and tunnel addressing of the Windows host."""

    host: str
    username: str
    private_key: str
    address: List[str]
    port: int = DEFAULT_SSH_PORT
    password: Optional[str] = None
    key_path: Optional[str] = None
    tunnel_name: str = DEFAULT_TUNNEL_NAME
    dns: List[str] = field(default_factory=lambda: list(DEFAULT_DNS_LIST))
    mtu: int = DEFAULT_CLIENT_MTU


@dataclass
class ServerSettings:
    """WireGuard 服务端信息。The WireGuard peer the tunnel connects to."""

    endpoint: str
    public_key: str
    preshared_key: Optional[str] = None
    allowed_ips: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_IPS))
    persistent_keepalive: int = DEFAULT_KEEPALIVE_SECONDS


@dataclass
class TunnelSettings:
    """The full configuration record, read once per run."""

    client: ClientSettings
    server: ServerSettings
    install_dir: str = DEFAULT_INSTALL_DIR
    remote_config_dir: str = DEFAULT_REMOTE_CONFIG_DIR
    installer_url: str = DEFAULT_INSTALLER_URL

    @property
    def tunnel_name(self) -> str:
        return self.client.tunnel_name

    @property
    def tunnel_service_name(self) -> str:
        return f"{TUNNEL_SERVICE_PREFIX}{self.client.tunnel_name}"

    @property
    def remote_config_path(self) -> str:
        return _win_join(self.remote_config_dir, f"{self.client.tunnel_name}.conf")

    @property
    def wireguard_exe(self) -> str:
        return _win_join(self.install_dir, "wireguard.exe")

    @property
    def wg_exe(self) -> str:
        return _win_join(self.install_dir, "wg.exe")

    def validate(self) -> None:
        """Raise :class:`ConfigError` describing the first invalid field."""

        client, server = self.client, self.server
        if not client.host.strip():
            raise ConfigError("client.host 不能为空。")
        if not client.username.strip():
            raise ConfigError("client.username 不能为空。")
        _check_port(client.port, "client.port")
        if not client.password and not client.key_path:
            raise ConfigError(
                f"需要 client.password 或 client.key_path（也可通过 {ENV_SSH_PASSWORD}/{ENV_SSH_KEY} 提供）。"
            )
        if not _TUNNEL_NAME_RE.match(client.tunnel_name):
            raise ConfigError(
                f"client.tunnel_name 无效：{client.tunnel_name!r}（仅允许 1-32 位字母、数字及 _=+.-）"
            )
        _check_wg_key(client.private_key, "client.private_key")
        if not client.address:
            raise ConfigError("client.address 不能为空。")
        for entry in client.address:
            _check_interface(entry, "client.address")
        for entry in client.dns:
            try:
                ipaddress.ip_address(entry)
            except ValueError as exc:
                raise ConfigError(f"client.dns 中的地址无效：{entry!r}") from exc
        if not 576 <= client.mtu <= 65535:
            raise ConfigError(f"client.mtu 超出范围 (576-65535)：{client.mtu}")

        split_endpoint(server.endpoint)
        _check_wg_key(server.public_key, "server.public_key")
        if server.preshared_key:
            _check_wg_key(server.preshared_key, "server.preshared_key")
        if not server.allowed_ips:
            raise ConfigError("server.allowed_ips 不能为空。")
        for network in server.allowed_ips:
            _check_interface(network, "server.allowed_ips")
        if not 0 <= server.persistent_keepalive <= 65535:
            raise ConfigError(
                f"server.persistent_keepalive 超出范围 (0-65535)：{server.persistent_keepalive}"
            )
        if not self.installer_url.lower().startswith("https://"):
            raise ConfigError(f"installer_url 必须是 https 地址：{self.installer_url}")


def _win_join(directory: str, name: str) -> str:
    return directory.rstrip("\\/") + "\\" + name


def _check_port(value: int, source: str) -> None:
    if not 1 <= value <= 65535:
        raise ConfigError(f"{source} 的值 {value} 超出有效范围 (1-65535)。")


def _check_wg_key(value: str, source: str) -> None:
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigError(f"{source} 不是有效的 base64 密钥。") from exc
    if len(raw) != 32:
        raise ConfigError(f"{source} 长度错误：应为 32 字节，实际 {len(raw)} 字节。")


def _check_interface(value: str, source: str) -> None:
    try:
        ipaddress.ip_interface(value)
    except ValueError as exc:
        raise ConfigError(f"{source} 中的地址无效：{value!r}") from exc


def split_endpoint(endpoint: str) -> tuple[str, int]:
    """Split ``host:port`` (IPv6 hosts in brackets) into its parts."""

    if ":" not in endpoint:
        raise ConfigError(f"server.endpoint 必须是 host:port 形式：{endpoint!r}")
    host, port_str = endpoint.rsplit(":", 1)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ConfigError(f"IPv6 endpoint 需要使用方括号，例如 [2001:db8::1]:51820：{endpoint!r}")
    if not host:
        raise ConfigError(f"server.endpoint 缺少主机：{endpoint!r}")
    try:
        port = int(port_str)
    except ValueError as exc:
        raise ConfigError(f"server.endpoint 端口不是整数：{endpoint!r}") from exc
    _check_port(port, "server.endpoint")
    return host, port


def _require(group: Mapping[str, Any], key: str, prefix: str) -> Any:
    value = group.get(key)
    if value is None or value == "":
        raise ConfigError(f"缺少必填字段：{prefix}.{key}")
    return value


def _optional_str(group: Mapping[str, Any], key: str, default: str, prefix: str = "") -> str:
    """Return ``group[key]``; JSON null or a missing key means ``default``."""
    value = group.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        name = f"{prefix}.{key}" if prefix else key
        raise ConfigError(f"{name} 必须是字符串，实际为 {type(value).__name__}")
    return value


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


def settings_from_dict(data: Mapping[str, Any], env: Mapping[str, str] | None = None) -> TunnelSettings:
    """Build and validate a :class:`TunnelSettings` from a parsed payload."""

    env = os.environ if env is None else env
    client_data = data.get("client")
    server_data = data.get("server")
    if not isinstance(client_data, Mapping):
        raise ConfigError("配置缺少 client 段。")
    if not isinstance(server_data, Mapping):
        raise ConfigError("配置缺少 server 段。")

    try:
        client = ClientSettings(
            host=str(_require(client_data, "host", "client")),
            username=str(env.get(ENV_SSH_USER) or _require(client_data, "username", "client")),
            private_key=str(_require(client_data, "private_key", "client")),
            address=_as_list(_require(client_data, "address", "client")),
            port=int(client_data.get("port", DEFAULT_SSH_PORT)),
            password=env.get(ENV_SSH_PASSWORD) or client_data.get("password"),
            key_path=env.get(ENV_SSH_KEY) or client_data.get("key_path"),
            tunnel_name=_optional_str(client_data, "tunnel_name", DEFAULT_TUNNEL_NAME, "client"),
            dns=_as_list(client_data.get("dns", DEFAULT_DNS_LIST)),
            mtu=int(client_data.get("mtu", DEFAULT_CLIENT_MTU)),
        )
        server = ServerSettings(
            endpoint=str(_require(server_data, "endpoint", "server")),
            public_key=str(_require(server_data, "public_key", "server")),
            preshared_key=server_data.get("preshared_key") or None,
            allowed_ips=_as_list(server_data.get("allowed_ips", DEFAULT_ALLOWED_IPS)),
            persistent_keepalive=int(
                server_data.get("persistent_keepalive", DEFAULT_KEEPALIVE_SECONDS)
            ),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"配置字段类型错误：{exc}") from exc

    settings = TunnelSettings(
        client=client,
        server=server,
        install_dir=_optional_str(data, "install_dir", DEFAULT_INSTALL_DIR),
        remote_config_dir=_optional_str(data, "remote_config_dir", DEFAULT_REMOTE_CONFIG_DIR),
        installer_url=_optional_str(data, "installer_url", DEFAULT_INSTALLER_URL),
    )
    settings.validate()
    return settings


def load_settings(path: str | Path, env: Mapping[str, str] | None = None) -> TunnelSettings:
    """读取 JSON 配置文件并校验。Load and validate the settings file at ``path``."""

    settings_path = Path(path).expanduser()
    if not settings_path.is_file():
        raise ConfigError(f"找不到配置文件：{settings_path}")
    try:
        data: Dict[str, Any] = json.loads(settings_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"配置文件不是有效的 JSON：{settings_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"配置文件顶层必须是对象：{settings_path}")
    return settings_from_dict(data, env)
