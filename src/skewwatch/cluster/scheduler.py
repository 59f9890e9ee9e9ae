"""Round loop driving sampling, evaluation, reporting and alerting.

Each round walks an explicit state machine:

    SAMPLING -> EVALUATING -> REPORTING -> [ALERTING] -> SLEEPING
                           \\-----------------------------> SLEEPING

The insignificant branch skips straight to SLEEPING without logging at
INFO or above. Rounds never overlap: the next one starts only after the
fixed sleep that follows the previous one.
"""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import Executor
from enum import Enum
from typing import Awaitable, Callable, Optional

from skewwatch.alerting.dispatcher import AlertDispatcher
from skewwatch.cluster.sessions import Fleet
from skewwatch.timing.report import log_report
from skewwatch.timing.sampler import Round, fleet_executor, sample_round
from skewwatch.timing.skew import SkewVerdict, evaluate
from skewwatch.utils.logging_config import get_logger

logger = get_logger(__name__)


class RoundState(Enum):
    SAMPLING = "sampling"
    EVALUATING = "evaluating"
    REPORTING = "reporting"
    ALERTING = "alerting"
    SLEEPING = "sleeping"


class Scheduler:
    def __init__(
        self,
        fleet: Fleet,
        interval: float,
        dispatcher: Optional[AlertDispatcher] = None,
        sampler: Optional[Callable[[Fleet], Awaitable[Round]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fleet = fleet
        self.interval = interval
        self.dispatcher = dispatcher
        # one long-lived worker per host, reused by every round
        self._executor: Optional[Executor] = None
        if sampler is None:
            self._executor = fleet_executor(fleet)
            sampler = functools.partial(sample_round, executor=self._executor)
        self._sampler = sampler
        self._sleep = sleep
        self.state = RoundState.SAMPLING
        self.rounds_completed = 0

    def _enter(self, state: RoundState) -> None:
        logger.debug("round_state", state=state.value, round=self.rounds_completed + 1)
        self.state = state

    async def run_round(self) -> SkewVerdict:
        """Sample, evaluate and, when the skew is significant, report and alert."""
        self._enter(RoundState.SAMPLING)
        round_ = await self._sampler(self.fleet)

        self._enter(RoundState.EVALUATING)
        verdict = evaluate(round_)

        if verdict.significant:
            self._enter(RoundState.REPORTING)
            log_report(logger, verdict, round_, self.fleet.hosts)
            if self.dispatcher is not None:
                self._enter(RoundState.ALERTING)
                await asyncio.to_thread(self.dispatcher.dispatch, verdict.actual_skew)
        else:
            logger.debug(
                "round_ok",
                actual_skew=verdict.actual_skew,
                expected_noise=verdict.expected_noise,
            )

        self._enter(RoundState.SLEEPING)
        return verdict

    async def run(self, max_rounds: Optional[int] = None) -> int:
        """Run rounds until a fatal error, or `max_rounds` if given. Returns rounds run."""
        while max_rounds is None or self.rounds_completed < max_rounds:
            await self.run_round()
            self.rounds_completed += 1
            if max_rounds is not None and self.rounds_completed >= max_rounds:
                break
            await self._sleep(self.interval)
        return self.rounds_completed

    def close(self) -> None:
        """Release the sampling threads; hung queries are not waited for."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
