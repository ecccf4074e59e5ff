#!/usr/bin/env python3
# PortWatch - Daemon entrypoint
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

from portwatch.config import load_config, validate_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("portwatch")


def _config_path_from_argv() -> str | None:
    if "--config" not in sys.argv and "-c" not in sys.argv:
        return None
    for i, a in enumerate(sys.argv[1:], 1):
        if a in ("--config", "-c") and i < len(sys.argv) - 1:
            return sys.argv[i + 1]
    return None


def main() -> None:
    # Any positional arg (list, watch, config ...) goes to the CLI
    positionals = [a for a in sys.argv[1:] if not a.startswith("-") and "=" not in a]
    config_path = _config_path_from_argv()
    if config_path in positionals:
        positionals.remove(config_path)
    if positionals or "--help" in sys.argv or "-h" in sys.argv:
        from portwatch.cli import main as cli_main
        cli_main()
        return
    config = load_config(config_path)
    errs = validate_config(config)
    if errs:
        for e in errs:
            logger.error("Config error: %s", e)
        sys.exit(1)
    log_dir = Path(config["agent"]["log_dir"])
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        logger.error(
            "Cannot create %s (permission denied). "
            "Run as root, or set agent.log_dir / activity.file to a path you can write.",
            log_dir,
        )
        sys.exit(1)

    from portwatch.collector.ports import ListeningPortCollector
    from portwatch.poller import Poller
    from portwatch.reporter.activity import ActivityLogger

    activity = ActivityLogger(config)
    poller = Poller(config, ListeningPortCollector(config), activity)

    def log_snapshot(snapshot) -> None:
        logger.info("Listening ports (%d):\n%s", len(snapshot), snapshot)

    poller.subscribe(log_snapshot)
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown():
        poller.shutdown()
        loop.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown)
        except NotImplementedError:
            pass

    try:
        loop.run_until_complete(activity.start())
        loop.run_until_complete(poller.run())
    except (KeyboardInterrupt, RuntimeError):
        pass
    finally:
        loop.run_until_complete(activity.stop())
        loop.close()


if __name__ == "__main__":
    main()
