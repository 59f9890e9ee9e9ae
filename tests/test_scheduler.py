"""Tests for the round loop state machine."""

import threading

import pytest
from structlog.testing import capture_logs

from skewwatch.cluster import scheduler as scheduler_module
from skewwatch.cluster.scheduler import RoundState, Scheduler
from skewwatch.cluster.sessions import Fleet
from skewwatch.errors import AlertError, TimestampParseError
from skewwatch.timing.sampler import Round

from conftest import FakeSession


class RecordingDispatcher:
    def __init__(self, events, error=None):
        self.events = events
        self.error = error
        self.calls = []

    def dispatch(self, max_skew):
        self.events.append(("alert", max_skew))
        self.calls.append(max_skew)
        if self.error is not None:
            raise self.error
        return ""


def fixed_sampler(times, elapsed):
    async def sampler(fleet):
        return Round(times=dict(times), elapsed=elapsed)
    return sampler


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class TestRunRound:
    @pytest.mark.asyncio
    async def test_insignificant_round_is_silent(self, fleet_factory):
        events = []
        dispatcher = RecordingDispatcher(events)
        sched = Scheduler(
            fleet_factory({"a": 100, "b": 100, "c": 100}),
            60.0,
            dispatcher,
            sampler=fixed_sampler({"a": 100, "b": 100, "c": 100}, 0.0),
        )

        with capture_logs() as logs:
            verdict = await sched.run_round()

        assert not verdict.significant
        assert dispatcher.calls == []
        assert [e for e in logs if e["log_level"] not in ("debug",)] == []
        assert sched.state is RoundState.SLEEPING

    @pytest.mark.asyncio
    async def test_latency_explained_round_is_silent(self, fleet_factory):
        events = []
        dispatcher = RecordingDispatcher(events)
        sched = Scheduler(
            fleet_factory({"a": 100, "b": 101}),
            60.0,
            dispatcher,
            sampler=fixed_sampler({"a": 100, "b": 101}, 2.0),
        )

        verdict = await sched.run_round()

        assert verdict.expected_noise == 3
        assert not verdict.significant
        assert dispatcher.calls == []

    @pytest.mark.asyncio
    async def test_significant_round_reports_then_alerts(self, fleet_factory, monkeypatch):
        events = []
        real_log_report = scheduler_module.log_report

        def recording_log_report(*args):
            events.append(("report",))
            return real_log_report(*args)

        monkeypatch.setattr(scheduler_module, "log_report", recording_log_report)
        dispatcher = RecordingDispatcher(events)
        sched = Scheduler(
            fleet_factory({"a": 100, "b": 105}),
            60.0,
            dispatcher,
            sampler=fixed_sampler({"b": 105, "a": 100}, 1.0),
        )

        with capture_logs() as logs:
            verdict = await sched.run_round()

        assert verdict.significant
        assert events == [("report",), ("alert", 5)]

        detected = [e for e in logs if e["event"] == "skew_detected"]
        assert len(detected) == 1
        assert detected[0]["expected_noise"] == 2
        assert detected[0]["actual_skew"] == 5

        rows = [(e["host"], e["time"], e["min"], e["max"]) for e in logs if e["event"] == "skew_report"]
        assert rows == [("a", 100, 0, 5), ("b", 105, 5, 0)]

    @pytest.mark.asyncio
    async def test_significant_round_without_alert_configured(self, fleet_factory):
        sched = Scheduler(
            fleet_factory({"a": 100, "b": 105}),
            60.0,
            None,
            sampler=fixed_sampler({"a": 100, "b": 105}, 1.0),
        )

        with capture_logs() as logs:
            verdict = await sched.run_round()

        assert verdict.significant
        assert any(e["event"] == "skew_detected" for e in logs)
        assert sched.state is RoundState.SLEEPING

    @pytest.mark.asyncio
    async def test_alert_failure_after_report(self, fleet_factory):
        events = []
        failure = AlertError("/usr/local/bin/page", 1, "pager unreachable\n")
        dispatcher = RecordingDispatcher(events, error=failure)
        sched = Scheduler(
            fleet_factory({"a": 100, "b": 105}),
            60.0,
            dispatcher,
            sampler=fixed_sampler({"a": 100, "b": 105}, 1.0),
        )

        with capture_logs() as logs:
            with pytest.raises(AlertError, match="pager unreachable"):
                await sched.run_round()

        assert [e["event"] for e in logs if e["log_level"] == "warning"] == [
            "skew_detected",
            "skew_report",
            "skew_report",
        ]
        assert sched.state is RoundState.ALERTING

    @pytest.mark.asyncio
    async def test_sampling_error_propagates(self, fleet_factory):
        async def broken(fleet):
            raise TimestampParseError("b", b"not-a-number")

        sched = Scheduler(fleet_factory({"a": 1, "b": 2}), 60.0, sampler=broken)

        with pytest.raises(TimestampParseError):
            await sched.run_round()
        assert sched.state is RoundState.SAMPLING


class TestRun:
    @pytest.mark.asyncio
    async def test_fixed_sleep_between_rounds(self, fleet_factory):
        sleep = RecordingSleep()
        sched = Scheduler(
            fleet_factory({"a": 1}),
            30.0,
            sampler=fixed_sampler({"a": 1}, 0.0),
            sleep=sleep,
        )

        assert await sched.run(max_rounds=3) == 3
        assert sleep.calls == [30.0, 30.0]

    @pytest.mark.asyncio
    async def test_sleep_follows_significant_round_too(self, fleet_factory):
        sleep = RecordingSleep()
        sched = Scheduler(
            fleet_factory({"a": 100, "b": 110}),
            5.0,
            sampler=fixed_sampler({"a": 100, "b": 110}, 0.0),
            sleep=sleep,
        )

        await sched.run(max_rounds=2)
        assert sleep.calls == [5.0]

    @pytest.mark.asyncio
    async def test_rounds_never_overlap(self, fleet_factory):
        in_flight = []
        peak = []

        async def sampler(fleet):
            in_flight.append(1)
            peak.append(len(in_flight))
            in_flight.pop()
            return Round(times={"a": 1}, elapsed=0.0)

        sched = Scheduler(fleet_factory({"a": 1}), 0.0, sampler=sampler, sleep=RecordingSleep())
        await sched.run(max_rounds=5)
        assert peak == [1] * 5

    @pytest.mark.asyncio
    async def test_fatal_error_stops_loop(self, fleet_factory):
        calls = []

        async def sampler(fleet):
            calls.append(1)
            if len(calls) == 2:
                raise TimestampParseError("a", b"garbage")
            return Round(times={"a": 1}, elapsed=0.0)

        sleep = RecordingSleep()
        sched = Scheduler(fleet_factory({"a": 1}), 1.0, sampler=sampler, sleep=sleep)

        with pytest.raises(TimestampParseError):
            await sched.run()
        assert len(calls) == 2
        assert sched.rounds_completed == 1
        assert sleep.calls == [1.0]


class TestExecution:
    @pytest.mark.asyncio
    async def test_default_sampler_queries_large_fleet_at_once(self):
        hosts = [f"node{i:02d}" for i in range(48)]
        barrier = threading.Barrier(len(hosts), timeout=5)

        class BarrierSession(FakeSession):
            def run(self, command):
                barrier.wait()
                return super().run(command)

        fleet = Fleet({h: BarrierSession(h, output=b"100") for h in hosts})
        sched = Scheduler(fleet, 60.0)
        try:
            verdict = await sched.run_round()
        finally:
            sched.close()

        assert verdict.actual_skew == 0
        assert verdict.expected_noise == 1

    @pytest.mark.asyncio
    async def test_alert_runs_off_the_event_loop_thread(self, fleet_factory):
        loop_thread = threading.get_ident()
        threads = []

        class ThreadRecordingDispatcher:
            def dispatch(self, max_skew):
                threads.append(threading.get_ident())
                return ""

        sched = Scheduler(
            fleet_factory({"a": 100, "b": 105}),
            60.0,
            ThreadRecordingDispatcher(),
            sampler=fixed_sampler({"a": 100, "b": 105}, 1.0),
        )
        await sched.run_round()

        assert len(threads) == 1
        assert threads[0] != loop_thread

    def test_close_is_idempotent(self, fleet_factory):
        sched = Scheduler(fleet_factory({"a": 1}), 1.0)
        sched.close()
        sched.close()
