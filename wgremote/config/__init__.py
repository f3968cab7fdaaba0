"""Centralized configuration for wgremote.

:mod:`.defaults` holds the constants, :mod:`.settings` the settings record
loaded from the JSON file.
"""

from .defaults import (
    COMMAND_TIMEOUT,
    DEFAULT_ALLOWED_IPS,
    DEFAULT_CLIENT_MTU,
    DEFAULT_DNS_LIST,
    DEFAULT_INSTALL_DIR,
    DEFAULT_INSTALLER_URL,
    DEFAULT_KEEPALIVE_SECONDS,
    DEFAULT_REMOTE_CONFIG_DIR,
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_TIMEOUT,
    DEFAULT_TUNNEL_NAME,
    SERVICE_START_TIMEOUT,
)
from .settings import (
    ClientSettings,
    ConfigError,
    ServerSettings,
    TunnelSettings,
    load_settings,
)

__all__ = [
    "COMMAND_TIMEOUT",
    "DEFAULT_ALLOWED_IPS",
    "DEFAULT_CLIENT_MTU",
    "DEFAULT_DNS_LIST",
    "DEFAULT_INSTALL_DIR",
    "DEFAULT_INSTALLER_URL",
    "DEFAULT_KEEPALIVE_SECONDS",
    "DEFAULT_REMOTE_CONFIG_DIR",
    "DEFAULT_SSH_PORT",
    "DEFAULT_SSH_TIMEOUT",
    "DEFAULT_TUNNEL_NAME",
    "SERVICE_START_TIMEOUT",
    "ClientSettings",
    "ConfigError",
    "ServerSettings",
    "TunnelSettings",
    "load_settings",
]
