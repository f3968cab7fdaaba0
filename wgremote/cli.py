"""命令行入口：通过 SSH 在 Windows 主机上一键部署 WireGuard 隧道。

本模块承担以下职责：
1. 解析命令行参数并读取 JSON 配置文件。
2. 初始化日志（控制台 + artifacts 目录下的日志文件）。
3. 调用 :func:`wgremote.windows_tunnel.provision`，任一步骤失败即打印原因并以非零状态退出。
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Sequence

from .config import DEFAULT_SSH_TIMEOUT, ConfigError, load_settings
from .logging_utils import get_logger, setup_logging
from .ssh_utils import SSHConnectError, SSHKeyLoadError
from .wg_conf import redact_config, render_tunnel_config
from .windows_tunnel import ProvisionError, provision

if os.name == "nt":
    os.system("")

GREEN = "\033[32m"
RED = "\033[31m"
RESET = "\033[0m"

ARTIFACTS_DIR = Path("artifacts")

LOGGER = get_logger("cli")


def _colorize(message: str, color: str) -> str:
    """用 ANSI 颜色编码包装文本。Return ``message`` wrapped in ANSI color codes."""

    return f"{color}{message}{RESET}"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="通过 SSH 在 Windows 主机上安装 WireGuard、写入隧道配置并启动隧道服务。"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("settings.json"),
        help="JSON 配置文件路径 (默认: ./settings.json)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=ARTIFACTS_DIR,
        help="日志目录 (默认: ./artifacts)",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_SSH_TIMEOUT,
        help=f"SSH 连接/认证超时秒数 (默认: {DEFAULT_SSH_TIMEOUT})",
    )
    parser.add_argument(
        "--print-config",
        action="store_true",
        help="只输出（已脱敏的）隧道配置，不连接远端主机",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="在控制台输出调试日志",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_dir, verbose=args.verbose)

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        LOGGER.error("Invalid settings: %s", exc)
        print(_colorize(f"❌ 配置错误：{exc}", RED))
        return 1

    if args.print_config:
        print(redact_config(render_tunnel_config(settings)), end="")
        return 0

    try:
        result = provision(settings, timeout=args.timeout)
    except (SSHKeyLoadError, SSHConnectError) as exc:
        LOGGER.error("SSH failure: %s", exc)
        print(_colorize(f"❌ SSH 连接失败：{exc}", RED))
        return 1
    except ProvisionError as exc:
        LOGGER.error("Provisioning failed: %s", exc)
        print(_colorize(f"❌ WireGuard 部署失败：{exc}", RED))
        return 1

    if result.wg_show:
        print("=== wg show ===")
        print(result.wg_show)
    action = "已安装并启动" if result.installed_now else "已启动"
    print(
        _colorize(
            f"✅ {result.host} 上的隧道 {result.service_name} {action}（配置：{result.config_path}）",
            GREEN,
        )
    )
    return 0


def run() -> None:
    """Console-script hook."""

    sys.exit(main())


if __name__ == "__main__":
    run()
