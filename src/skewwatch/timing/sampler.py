"""Concurrent per-round clock sampling across the fleet."""

from __future__ import annotations

import asyncio
import re
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Tuple

from skewwatch.cluster.sessions import HostSession
from skewwatch.errors import TimestampParseError
from skewwatch.utils.logging_config import get_logger

TIME_COMMAND = "/bin/date +%s"

_EPOCH_SECONDS = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class Round:
    """All host timestamps for one polling cycle plus the fan-out duration."""
    times: Mapping[str, int]
    elapsed: float  # seconds


def parse_timestamp(host: str, raw: bytes) -> int:
    """Parse `date +%s` output into integer epoch seconds."""
    text = raw.decode("utf-8", errors="replace").strip()
    if not _EPOCH_SECONDS.fullmatch(text):
        raise TimestampParseError(host, raw)
    return int(text)


def fleet_executor(fleet: Mapping[str, HostSession]) -> ThreadPoolExecutor:
    """Thread pool with one worker per host, so no query waits for a free thread."""
    return ThreadPoolExecutor(max_workers=max(1, len(fleet)), thread_name_prefix="skewwatch-sample")


async def _sample_host(host: str, session: HostSession, command: str, executor: Executor) -> Tuple[str, int]:
    loop = asyncio.get_running_loop()
    raw = await loop.run_in_executor(executor, session.run, command)
    timestamp = parse_timestamp(host, raw)
    get_logger(__name__, host=host).debug("host_sampled", timestamp=timestamp)
    return host, timestamp


async def sample_round(
    fleet: Mapping[str, HostSession],
    command: str = TIME_COMMAND,
    clock: Callable[[], float] = time.monotonic,
    executor: Optional[Executor] = None,
) -> Round:
    """Query every host concurrently and collect a complete Round.

    One task per host is started before any is awaited. Queries run on
    `executor`, which must have at least one worker per host; without one a
    pool sized to the fleet is created for this round. The first session or
    parse error propagates and no Round is produced.
    """
    owned = executor is None
    if owned:
        executor = fleet_executor(fleet)
    try:
        start = clock()
        tasks = [asyncio.create_task(_sample_host(host, fleet[host], command, executor)) for host in fleet]
        results = await asyncio.gather(*tasks)
        elapsed = clock() - start
    finally:
        if owned:
            executor.shutdown(wait=False)
    return Round(times=MappingProxyType(dict(results)), elapsed=elapsed)
