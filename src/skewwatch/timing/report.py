from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import structlog

from skewwatch.timing.sampler import Round
from skewwatch.timing.skew import SkewVerdict


@dataclass(frozen=True)
class ReportRow:
    host: str
    time: int
    from_min: int
    from_max: int


def build_report(verdict: SkewVerdict, round_: Round, hosts: Sequence[str]) -> List[ReportRow]:
    """One row per host, in the fixed startup order rather than arrival order."""
    rows = []
    for host in hosts:
        t = round_.times[host]
        rows.append(ReportRow(host=host, time=t, from_min=t - verdict.min_time, from_max=verdict.max_time - t))
    return rows


def log_report(
    logger: structlog.BoundLogger,
    verdict: SkewVerdict,
    round_: Round,
    hosts: Sequence[str],
) -> List[ReportRow]:
    logger.warning(
        "skew_detected",
        expected_noise=verdict.expected_noise,
        elapsed=f"{verdict.elapsed:.3f}s",
        actual_skew=verdict.actual_skew,
        min_host=verdict.min_host,
        max_host=verdict.max_host,
    )
    rows = build_report(verdict, round_, hosts)
    for row in rows:
        logger.warning(
            "skew_report",
            host=row.host,
            time=row.time,
            min=row.from_min,
            max=row.from_max,
        )
    return rows
