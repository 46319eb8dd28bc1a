"""
Unit tests for the build worker pool and step retry.
"""
import asyncio

import pytest

from profilebuilder.services.task_queue import BuildTaskQueue, StepFailed


@pytest.fixture
def queue():
    return BuildTaskQueue(max_workers=2, step_retries=3, backoff_multiplier=0)


class TestRunStep:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_first_try(self, queue):
        async def step():
            return "done"

        outcome = await queue.run_step("exa", step)

        assert outcome.ok is True
        assert outcome.value == "done"
        assert outcome.attempts == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retries_until_success(self, queue):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return 42

        outcome = await queue.run_step("github", flaky)

        assert outcome.ok is True
        assert outcome.value == 42
        assert outcome.attempts == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_exhausted_retries_report_failure(self, queue):
        async def broken():
            raise RuntimeError("still down")

        outcome = await queue.run_step("x", broken)

        assert outcome.ok is False
        assert outcome.attempts == 3
        assert isinstance(outcome.error, RuntimeError)
        assert outcome.value is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_step_failed_keeps_payload(self, queue):
        async def failing():
            raise StepFailed("rate limited", payload={"source": "exa"})

        outcome = await queue.run_step("exa", failing)

        assert outcome.ok is False
        assert outcome.value == {"source": "exa"}
        assert str(outcome.error) == "rate limited"


class TestWorkerPool:

    @pytest.mark.unit
    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            BuildTaskQueue(max_workers=0)
        with pytest.raises(ValueError):
            BuildTaskQueue(step_retries=0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrency_is_capped(self, queue):
        peak = []

        async def build():
            peak.append(queue.active)
            await asyncio.sleep(0.01)
            return queue.active

        await queue.run_all([build for _ in range(6)])

        assert max(peak) == 2
        assert queue.active == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_run_all_keeps_order_and_exceptions(self, queue):
        def factory(n):
            async def build():
                if n == 1:
                    raise ValueError("bad person")
                return n
            return build

        results = await queue.run_all([factory(n) for n in range(3)])

        assert results[0] == 0
        assert isinstance(results[1], ValueError)
        assert results[2] == 2
