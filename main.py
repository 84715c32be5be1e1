#!/usr/bin/env python3
import asyncio
import os
import signal
from pathlib import Path
from typing import List

from core.config import BridgeConfig, ConfigError
from core.health import HealthServer
from core.metrics import BridgeMetrics
from core.motion import MotionNotifier
from core.targets import CameraRouter, group_targets
from dahua import ConnectionManager, EventChannel, Signal
from utils.logging_setup import log_channel, setup_logging

PROJECT_ROOT = Path(__file__).resolve().parent
CONFIG_PATH = Path(os.environ.get("DAHUA_ALERTS_CONFIG", PROJECT_ROOT / "config" / "config.yaml"))


def build_managers(cfg: BridgeConfig, metrics: BridgeMetrics, notifier: MotionNotifier) -> List[ConnectionManager]:
    managers = []
    for target in group_targets(cfg):
        channel = EventChannel(target.host)
        log_channel(channel)
        metrics.attach(target.host, channel)
        channel.subscribe(Signal.ALARM, notifier.handle_alarm)
        managers.append(
            ConnectionManager(
                target,
                channel,
                reconnect_delay=cfg.reconnect_delay,
                max_auth_attempts=cfg.max_auth_attempts,
                **cfg.session_options(),
            )
        )
    return managers


async def main():
    cfg = BridgeConfig.load(CONFIG_PATH)
    logger = setup_logging(cfg.log_level)
    try:
        cfg.validate()
    except ConfigError as e:
        for problem in e.problems:
            logger.error(problem)
        logger.error("Errors above, shutting down")
        return
    logger.debug("Dahua alerts bridge starting...")

    metrics = BridgeMetrics()
    notifier = MotionNotifier(CameraRouter(cfg), cfg.motion_port, metrics=metrics)
    managers = build_managers(cfg, metrics, notifier)
    health = HealthServer(managers, metrics, cfg.health_host, cfg.health_port) if cfg.health_port else None

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _stop():
        logger.info("Shutting down...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _stop)

    for manager in managers:
        logger.info("Watching %s for %s", manager.host, ",".join(manager.target.event_codes))
        manager.start()

    try:
        if health:
            await health.start()
        await stop_event.wait()
    finally:
        await asyncio.gather(*(m.stop() for m in managers), return_exceptions=True)
        if health:
            await health.stop()
        logger.info("Stopped")


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
