"""wgremote：通过 SSH 在 Windows 主机上部署 WireGuard 隧道。

功能概览：
1. :mod:`wgremote.config` 读取并校验 JSON 配置（client / server 两组）。
2. :mod:`wgremote.ssh_utils` 封装 Paramiko 会话与 PowerShell 编码。
3. :mod:`wgremote.windows_tunnel` 依次完成安装检查、安装、写配置、启动与验证。

Provision a WireGuard tunnel on a Windows host over SSH.
"""

from __future__ import annotations

from .config import ConfigError, TunnelSettings, load_settings
from .windows_tunnel import ProvisionError, ProvisionResult, provision

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ProvisionError",
    "ProvisionResult",
    "TunnelSettings",
    "load_settings",
    "provision",
]
