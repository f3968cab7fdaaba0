"""Render the WireGuard tunnel configuration written to the Windows host."""

from __future__ import annotations

import re

from .config.settings import ClientSettings, ServerSettings, TunnelSettings

_SECRET_LINE_RE = re.compile(r"^(\s*(?:PrivateKey|PresharedKey)\s*=\s*).+$", re.MULTILINE)


def render_interface(client: ClientSettings) -> str:
    """根据客户端配置生成 [Interface] 段落。"""
    lines = ["[Interface]"]
    lines.append(f"PrivateKey = {client.private_key}")
    lines.append("Address = " + ", ".join(client.address))
    if client.dns:
        lines.append("DNS = " + ", ".join(client.dns))
    lines.append(f"MTU = {client.mtu}")
    return "\n".join(lines)


def render_peer(server: ServerSettings) -> str:
    """根据服务端配置生成 [Peer] 段落。"""
    lines = ["[Peer]"]
    lines.append(f"PublicKey = {server.public_key}")
    if server.preshared_key:
        lines.append(f"PresharedKey = {server.preshared_key}")
    lines.append("AllowedIPs = " + ", ".join(server.allowed_ips))
    lines.append(f"Endpoint = {server.endpoint}")
    if server.persistent_keepalive:
        lines.append(f"PersistentKeepalive = {server.persistent_keepalive}")
    return "\n".join(lines)


def render_tunnel_config(settings: TunnelSettings) -> str:
    """组装完整的 WireGuard 配置内容。"""
    sections = [render_interface(settings.client), render_peer(settings.server)]
    return "\n\n".join(sections) + "\n"


def redact_config(text: str) -> str:
    """Mask private and preshared keys so the config can be printed or logged."""
    return _SECRET_LINE_RE.sub(r"\g<1>***", text)
