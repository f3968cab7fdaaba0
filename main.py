"""主程序入口：通过 SSH 在 Windows 主机上一键部署 WireGuard 隧道。

Thin launcher so the tool can be run from a checkout with ``python main.py``;
the CLI itself lives in :mod:`wgremote.cli`.
"""

from __future__ import annotations

from wgremote.cli import run

if __name__ == "__main__":  # pragma: no cover - module execution hook
    run()
