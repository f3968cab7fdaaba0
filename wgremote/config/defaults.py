"""Project-wide default values for wgremote.

Keeping the remote layout and tunnel defaults in one place makes it easier
to audit what gets written to the Windows host.
"""

DEFAULT_SSH_PORT = 22
DEFAULT_SSH_TIMEOUT = 20
# msiexec on a slow link can take several minutes.
COMMAND_TIMEOUT = 900
SERVICE_START_TIMEOUT = 30

DEFAULT_TUNNEL_NAME = "wg0"
DEFAULT_DNS_LIST = [
    "1.1.1.1",  # Cloudflare
    "8.8.8.8",  # Google
]
DEFAULT_CLIENT_MTU = 1420
DEFAULT_KEEPALIVE_SECONDS = 25
DEFAULT_ALLOWED_IPS = ["0.0.0.0/0", "::/0"]

# WireGuard for Windows 的安装位置与官方 MSI
DEFAULT_INSTALL_DIR = r"C:\Program Files\WireGuard"
DEFAULT_REMOTE_CONFIG_DIR = r"C:\ProgramData\wgremote"
DEFAULT_INSTALLER_URL = "https://download.wireguard.com/windows-client/wireguard-amd64-0.5.3.msi"
TUNNEL_SERVICE_PREFIX = "WireGuardTunnel$"

ENV_SSH_PASSWORD = "WGREMOTE_SSH_PASSWORD"
ENV_SSH_KEY = "WGREMOTE_SSH_KEY"
ENV_SSH_USER = "WGREMOTE_SSH_USER"
