"""Skew evaluation for a single round.

Hosts are not sampled at exactly the same instant: the fan-out itself takes
`elapsed` seconds, so up to floor(elapsed) + 1 seconds of spread between the
earliest and latest `date +%s` can come from sampling order alone. Only a
spread at or above that bound counts as significant skew.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from skewwatch.timing.sampler import Round


@dataclass(frozen=True)
class SkewVerdict:
    min_time: int
    max_time: int
    min_host: str
    max_host: str
    actual_skew: int
    expected_noise: int
    elapsed: float
    significant: bool


def expected_noise(elapsed: float) -> int:
    """Spread in whole seconds attributable to a fan-out lasting `elapsed` seconds."""
    return math.floor(elapsed) + 1


def evaluate(round_: Round) -> SkewVerdict:
    if not round_.times:
        raise ValueError("cannot evaluate an empty round")

    # sorted so ties on min/max resolve to the first host by name
    ordered = sorted(round_.times.items())
    min_host, min_time = min(ordered, key=lambda item: item[1])
    max_host, max_time = max(ordered, key=lambda item: item[1])

    actual = max_time - min_time
    noise = expected_noise(round_.elapsed)
    return SkewVerdict(
        min_time=min_time,
        max_time=max_time,
        min_host=min_host,
        max_host=max_host,
        actual_skew=actual,
        expected_noise=noise,
        elapsed=round_.elapsed,
        significant=actual >= noise,
    )
