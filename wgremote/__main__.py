"""模块入口，使其可通过 ``python -m wgremote`` 直接运行。Module entry point for ``python -m wgremote``."""

from __future__ import annotations

from .cli import run

if __name__ == "__main__":  # pragma: no cover - module execution hook
    run()
