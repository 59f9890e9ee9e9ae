#!/usr/bin/env python3
"""Run the fleet clock-skew monitor.

Usage examples:
  - skewwatch --hosts web1,web2,db1
  - skewwatch --hosts web1,web2 --sleep 30s --alert /usr/local/bin/page-oncall
  - SKEWWATCH_HOSTS=web1,web2 python -m skewwatch.app.main --rounds 1

Every fatal condition surfaces here as a SkewwatchError, is logged once,
and ends the process with a non-zero status. Restarting is left to the
process supervisor.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from skewwatch.alerting.dispatcher import AlertDispatcher
from skewwatch.cluster.scheduler import Scheduler
from skewwatch.cluster.sessions import Fleet, check_agent, connect_fleet
from skewwatch.config.monitor import HOST_KEY_POLICIES, LOG_FORMATS, load_monitor_config
from skewwatch.errors import ConfigError, SkewwatchError
from skewwatch.utils.logging_config import setup_logging

EXIT_FATAL = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Monitor wall-clock skew across a fleet of hosts over SSH")
    parser.add_argument("--hosts", help="comma separated list of hostnames (env: SKEWWATCH_HOSTS)")
    parser.add_argument("--user", help="SSH username (env: SKEWWATCH_USER, default: $USER)")
    parser.add_argument("--sleep", help="duration to sleep between runs, e.g. 30s or 1m (default: 1m)")
    parser.add_argument(
        "--alert",
        help="if set, command to run when skew is encountered; $MAXSKEW will be set to the max skew",
    )
    parser.add_argument("--port", type=int, help="SSH port used for every host (default: 22)")
    parser.add_argument("--connect-timeout", help="TCP connect timeout at startup (default: 10s)")
    parser.add_argument("--host-key-policy", choices=HOST_KEY_POLICIES, help="handling of unknown host keys")
    parser.add_argument("--rounds", type=int, help="stop after this many rounds (default: run forever)")
    parser.add_argument("--log-level", help="logging level (default: INFO)")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="log line format (default: console)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.rounds is not None and args.rounds < 1:
            raise ConfigError(f"Invalid round count {args.rounds}, expected at least 1")
        config = load_monitor_config(
            hosts=args.hosts,
            user=args.user,
            sleep=args.sleep,
            alert=args.alert,
            port=args.port,
            connect_timeout=args.connect_timeout,
            host_key_policy=args.host_key_policy,
            log_level=args.log_level,
            log_format=args.log_format,
        )
    except ConfigError as exc:
        logger = setup_logging(component="monitor")
        logger.error("fatal_error", error=str(exc), **exc.context())
        return EXIT_CONFIG

    logger = setup_logging(level=config.log_level, component="monitor", log_format=config.log_format)

    fleet: Optional[Fleet] = None
    scheduler: Optional[Scheduler] = None
    try:
        check_agent()
        fleet = connect_fleet(config)
        dispatcher = AlertDispatcher(config.alert) if config.alert else None
        scheduler = Scheduler(fleet, config.interval, dispatcher)
        logger.info(
            "monitor_started",
            hosts=",".join(fleet.hosts),
            interval=f"{config.interval}s",
            alert=config.alert,
        )
        rounds = asyncio.run(scheduler.run(max_rounds=args.rounds))
        logger.info("monitor_stopped", rounds=rounds)
        return 0
    except KeyboardInterrupt:
        logger.info("monitor_stopped", reason="interrupted")
        return EXIT_INTERRUPTED
    except SkewwatchError as exc:
        logger.error("fatal_error", error=str(exc), **exc.context())
        return EXIT_FATAL
    finally:
        if scheduler is not None:
            scheduler.close()
        if fleet is not None:
            fleet.close()


if __name__ == "__main__":
    sys.exit(main())
