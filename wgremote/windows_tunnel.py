"""WireGuard for Windows provisioning over SSH.

Each step runs one PowerShell snippet on the remote host and checks its
result.  A failing step raises :class:`ProvisionError`; no later step runs.
"""

from __future__ import annotations

import base64
import textwrap
from dataclasses import dataclass
from typing import Callable

from .config.defaults import DEFAULT_SSH_TIMEOUT, SERVICE_START_TIMEOUT
from .config.settings import TunnelSettings
from .logging_utils import get_logger
from .ssh_utils import CommandResult, RemoteSession
from .wg_conf import redact_config, render_tunnel_config

LOGGER = get_logger(__name__)


class ProvisionError(RuntimeError):
    """Raised when provisioning fails."""


@dataclass
class ProvisionResult:
    """一次部署的结果摘要。Summary of a successful provisioning run."""

    host: str
    installed_now: bool
    config_path: str
    service_name: str
    status: str
    wg_show: str = ""


def _ps_quote(value: str) -> str:
    """Return ``value`` as a single-quoted PowerShell literal."""
    return "'" + value.replace("'", "''") + "'"


def _fill(template: str, **values: str) -> str:
    script = textwrap.dedent(template).strip()
    for key, value in values.items():
        script = script.replace(f"__{key}__", value)
    return script


def _run_checked(session: RemoteSession, script: str, description: str) -> str:
    LOGGER.debug("Running step: %s", description)
    result: CommandResult = session.run_powershell(script)
    if not result.ok:
        LOGGER.error("Step failed (%s): exit %s", description, result.exit_status)
        raise ProvisionError(
            f"远端执行失败：{description}\n退出码: {result.exit_status}\n输出: {result.output_tail()}"
        )
    return result.stdout


_CHECK_INSTALLED = r"""
if (Test-Path -LiteralPath __EXE__ -PathType Leaf) { 'installed' } else { 'missing' }
"""

_INSTALL_CLIENT = r"""
$ErrorActionPreference = 'Stop'
$ProgressPreference = 'SilentlyContinue'
[Net.ServicePointManager]::SecurityProtocol = [Net.SecurityProtocolType]::Tls12
$msi = Join-Path -Path $env:TEMP -ChildPath 'wireguard-installer.msi'
Invoke-WebRequest -Uri __URL__ -OutFile $msi -UseBasicParsing
$arguments = @('/i', ('"{0}"' -f $msi), '/qn', '/norestart', 'DO_NOT_LAUNCH=1')
$proc = Start-Process -FilePath 'msiexec.exe' -ArgumentList $arguments -Wait -PassThru
Remove-Item -LiteralPath $msi -Force -ErrorAction SilentlyContinue
# 3010: success, reboot required
if ($proc.ExitCode -ne 0 -and $proc.ExitCode -ne 3010) {
    [Console]::Error.WriteLine("msiexec exited with code $($proc.ExitCode)")
    exit $proc.ExitCode
}
'ok'
"""

_WRITE_CONFIG = r"""
$ErrorActionPreference = 'Stop'
$path = __PATH__
New-Item -ItemType Directory -Force -Path __DIR__ | Out-Null
[IO.File]::WriteAllBytes($path, [Convert]::FromBase64String('__CONTENT__'))
# SYSTEM and Administrators only; the file holds the tunnel private key.
& icacls.exe $path /inheritance:r /grant:r '*S-1-5-18:F' '*S-1-5-32-544:F' | Out-Null
if ($LASTEXITCODE -ne 0) {
    [Console]::Error.WriteLine("icacls exited with code $LASTEXITCODE")
    exit $LASTEXITCODE
}
'written'
"""

_START_SERVICE = r"""
$ErrorActionPreference = 'Stop'
$exe = __EXE__
$service = __SERVICE__
if (Get-Service -Name $service -ErrorAction SilentlyContinue) {
    $old = Start-Process -FilePath $exe -ArgumentList @('/uninstalltunnelservice', __NAME__) -Wait -PassThru
    if ($old.ExitCode -ne 0) {
        [Console]::Error.WriteLine("uninstalltunnelservice exited with code $($old.ExitCode)")
        exit $old.ExitCode
    }
    for ($i = 0; $i -lt 20 -and (Get-Service -Name $service -ErrorAction SilentlyContinue); $i++) {
        Start-Sleep -Milliseconds 500
    }
    if (Get-Service -Name $service -ErrorAction SilentlyContinue) {
        [Console]::Error.WriteLine("previous tunnel service was not removed: $service")
        exit 2
    }
}
$arguments = @('/installtunnelservice', ('"{0}"' -f __CONF__))
$proc = Start-Process -FilePath $exe -ArgumentList $arguments -Wait -PassThru
if ($proc.ExitCode -ne 0) {
    [Console]::Error.WriteLine("installtunnelservice exited with code $($proc.ExitCode)")
    exit $proc.ExitCode
}
'started'
"""

_SERVICE_STATUS = r"""
$svc = Get-Service -Name __SERVICE__ -ErrorAction SilentlyContinue
if ($null -eq $svc) { 'Missing'; exit 0 }
try { $svc.WaitForStatus('Running', [TimeSpan]::FromSeconds(__TIMEOUT__)) } catch { }
$svc.Refresh()
[string]$svc.Status
"""

_WG_SHOW = r"""
& __WG__ show __NAME__
"""


def is_client_installed(session: RemoteSession, settings: TunnelSettings) -> bool:
    """Return ``True`` when ``wireguard.exe`` exists on the remote host."""

    script = _fill(_CHECK_INSTALLED, EXE=_ps_quote(settings.wireguard_exe))
    state = _run_checked(session, script, "检查 WireGuard for Windows 是否已安装").strip().lower()
    if state not in {"installed", "missing"}:
        raise ProvisionError(f"无法识别的安装检查结果：{state!r}")
    return state == "installed"


def install_client(session: RemoteSession, settings: TunnelSettings) -> None:
    """Download the MSI to ``%TEMP%`` and install it silently."""

    script = _fill(_INSTALL_CLIENT, URL=_ps_quote(settings.installer_url))
    _run_checked(session, script, "下载并安装 WireGuard for Windows")


def ensure_client_installed(session: RemoteSession, settings: TunnelSettings) -> bool:
    """Install the tunnel client if absent; return ``True`` if it was installed now."""

    print("→ 检查 WireGuard for Windows 安装状态 ...")
    if is_client_installed(session, settings):
        print(f"✅ 已检测到 WireGuard for Windows：{settings.wireguard_exe}")
        return False

    print("→ 未检测到 WireGuard for Windows，开始静默安装 ...")
    LOGGER.info("Installing WireGuard from %s", settings.installer_url)
    install_client(session, settings)
    if not is_client_installed(session, settings):
        raise ProvisionError(
            f"安装流程执行完毕，但未找到 {settings.wireguard_exe}。请登录主机手动确认。"
        )
    print(f"✅ WireGuard for Windows 安装完成：{settings.wireguard_exe}")
    return True


def write_tunnel_config(session: RemoteSession, settings: TunnelSettings) -> str:
    """Write the rendered tunnel config to the remote host and return its path."""

    content = render_tunnel_config(settings)
    LOGGER.debug("Tunnel config:\n%s", redact_config(content))
    encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
    script = _fill(
        _WRITE_CONFIG,
        PATH=_ps_quote(settings.remote_config_path),
        DIR=_ps_quote(settings.remote_config_dir),
        CONTENT=encoded,
    )
    print(f"→ 写入隧道配置：{settings.remote_config_path}")
    _run_checked(session, script, "写入隧道配置文件")
    return settings.remote_config_path


def start_tunnel_service(session: RemoteSession, settings: TunnelSettings) -> None:
    """(Re)install the tunnel service from the written config."""

    script = _fill(
        _START_SERVICE,
        EXE=_ps_quote(settings.wireguard_exe),
        SERVICE=_ps_quote(settings.tunnel_service_name),
        NAME=_ps_quote(settings.tunnel_name),
        CONF=_ps_quote(settings.remote_config_path),
    )
    print(f"→ 安装并启动隧道服务：{settings.tunnel_service_name}")
    _run_checked(session, script, "安装隧道服务")


def verify_tunnel(session: RemoteSession, settings: TunnelSettings) -> str:
    """Check the tunnel service is running and return ``wg show`` output.

    ``wg show`` is informational only; its failure does not fail the run.
    """

    script = _fill(
        _SERVICE_STATUS,
        SERVICE=_ps_quote(settings.tunnel_service_name),
        TIMEOUT=str(SERVICE_START_TIMEOUT),
    )
    status = _run_checked(session, script, "查询隧道服务状态").strip()
    LOGGER.info("Service %s status: %s", settings.tunnel_service_name, status)
    if status == "Missing":
        raise ProvisionError(f"隧道服务不存在：{settings.tunnel_service_name}")
    if status != "Running":
        raise ProvisionError(
            f"隧道服务未处于 Running 状态（当前: {status}）。请检查 Windows 事件日志中的 WireGuard 记录。"
        )
    print(f"✅ 隧道服务运行中：{settings.tunnel_service_name}")

    show = session.run_powershell(
        _fill(_WG_SHOW, WG=_ps_quote(settings.wg_exe), NAME=_ps_quote(settings.tunnel_name))
    )
    if not show.ok:
        LOGGER.warning("wg show failed: %s", show.output_tail())
        print(f"⚠️ 无法读取 wg show 输出：{show.output_tail()}")
        return ""
    return show.stdout.strip()


def provision(
    settings: TunnelSettings,
    *,
    session_factory: Callable[..., RemoteSession] = RemoteSession,
    timeout: int = DEFAULT_SSH_TIMEOUT,
) -> ProvisionResult:
    """Provision the tunnel on ``settings.client.host``.

    The SSH session is always closed, also when a step fails.
    """

    client = settings.client
    print(f"→ 连接 {client.username}@{client.host}:{client.port} ...")
    with session_factory(client, timeout=timeout) as session:
        print("✅ SSH 连接成功")
        installed_now = ensure_client_installed(session, settings)
        config_path = write_tunnel_config(session, settings)
        start_tunnel_service(session, settings)
        wg_show = verify_tunnel(session, settings)

    LOGGER.info("Provisioned tunnel %s on %s", settings.tunnel_name, client.host)
    return ProvisionResult(
        host=client.host,
        installed_now=installed_now,
        config_path=config_path,
        service_name=settings.tunnel_service_name,
        status="Running",
        wg_show=wg_show,
    )


__all__ = [
    "ProvisionError",
    "ProvisionResult",
    "ensure_client_installed",
    "install_client",
    "is_client_installed",
    "provision",
    "start_tunnel_service",
    "verify_tunnel",
    "write_tunnel_config",
]
