# tests/engine/test_retry.py
# 单核心重试控制器测试 / Per-core retry controller tests

import asyncio
import json

import pytest
from unittest.mock import AsyncMock

from magi.agents.core import CoreAgent
from magi.agents.judge import JudgeAgent
from magi.engine.retry import CoreRetryController
from magi.llm.config import EngineSettings
from magi.primitives.models import Perspective

_PASS = json.dumps({"pass": True, "issues": [], "feedback": ""})


def _reject(feedback="Quantify the likelihood."):
    return json.dumps({"pass": False, "issues": ["Too vague"], "feedback": feedback})


def _controller(core_caller, judge_caller, perspective=Perspective.CASPER, **kwargs):
    settings = kwargs.pop("settings", EngineSettings())
    return CoreRetryController(
        CoreAgent(perspective, core_caller),
        JudgeAgent(judge_caller, timeout_ms=settings.judge_timeout_ms),
        settings,
        **kwargs,
    )


class TestAcceptance:
    @pytest.mark.asyncio
    async def test_first_attempt_accepted(self):
        core = AsyncMock(return_value="Probability of flooding is 30%.")
        result = await _controller(core, AsyncMock(return_value=_PASS)).run("Q", "Q")
        assert result.ok
        assert result.attempts == 1
        assert result.text == "Probability of flooding is 30%."
        assert core.await_count == 1

    @pytest.mark.asyncio
    async def test_second_attempt_carries_feedback(self):
        core = AsyncMock(side_effect=["vague", "precise"])
        judge = AsyncMock(side_effect=[_reject("Give base rates."), _PASS])
        result = await _controller(core, judge).run("Assess risk", "Assess risk")
        assert result.ok
        assert result.attempts == 2
        assert result.text == "precise"
        first, second = core.call_args_list
        assert first.kwargs["user_prompt"] == "Assess risk"
        assert "Give base rates." in second.kwargs["user_prompt"]

    @pytest.mark.asyncio
    async def test_judge_receives_raw_query(self):
        core = AsyncMock(return_value="answer")
        judge = AsyncMock(return_value=_PASS)
        await _controller(core, judge).run("[Location context: Oslo]\n\nQ", "Q")
        prompt = judge.call_args.kwargs["user_prompt"]
        assert "## Original user query\nQ\n" in prompt


class TestRetryCeiling:
    @pytest.mark.asyncio
    async def test_always_rejecting_judge_exhausts(self):
        core = AsyncMock(side_effect=["a1", "a2", "a3"])
        judge = AsyncMock(return_value=_reject())
        result = await _controller(core, judge).run("Q", "Q")
        assert core.await_count == 3
        assert result.attempts == 3
        assert result.text == "a3"
        assert result.error.startswith("[EXHAUSTED] CASPER failed validation after 3 attempts")
        assert "Too vague" in result.error

    @pytest.mark.asyncio
    async def test_ceiling_follows_settings(self):
        core = AsyncMock(return_value="a")
        judge = AsyncMock(return_value=_reject())
        result = await _controller(
            core, judge, settings=EngineSettings(max_retries=0),
        ).run("Q", "Q")
        assert core.await_count == 1
        assert result.attempts == 1
        assert not result.ok


class TestFailOpen:
    @pytest.mark.asyncio
    async def test_judge_transport_error_accepts(self):
        core = AsyncMock(return_value="answer")
        judge = AsyncMock(side_effect=RuntimeError("judge down"))
        result = await _controller(core, judge).run("Q", "Q")
        assert result.ok
        assert result.attempts == 1


class TestOfflineMarker:
    @pytest.mark.asyncio
    async def test_offline_output_is_not_validated(self):
        core = AsyncMock(return_value="[BALTHASAR OFFLINE] Core unavailable. Error: quota")
        judge = AsyncMock(return_value=_PASS)
        result = await _controller(core, judge, Perspective.BALTHASAR).run("Q", "Q")
        assert judge.await_count == 0
        assert result.attempts == 1
        assert result.text.startswith("[BALTHASAR OFFLINE]")
        assert result.error.startswith("[OFFLINE]")


class TestGenerationFailure:
    @pytest.mark.asyncio
    async def test_transport_failure_retries_with_same_feedback_state(self):
        core = AsyncMock(side_effect=[RuntimeError("HTTP 503"), "answer"])
        judge = AsyncMock(return_value=_PASS)
        result = await _controller(core, judge).run("Q", "Q")
        assert result.ok
        assert result.attempts == 2
        assert core.call_args_list[1].kwargs["user_prompt"] == "Q"

    @pytest.mark.asyncio
    async def test_failure_after_rejection_keeps_feedback(self):
        core = AsyncMock(side_effect=["vague", RuntimeError("reset"), "precise"])
        judge = AsyncMock(side_effect=[_reject("Cite numbers."), _PASS])
        result = await _controller(core, judge).run("Q", "Q")
        assert result.ok
        assert result.attempts == 3
        assert "Cite numbers." in core.call_args_list[2].kwargs["user_prompt"]

    @pytest.mark.asyncio
    async def test_transport_failure_at_ceiling_yields_offline_text(self):
        core = AsyncMock(side_effect=RuntimeError("HTTP 503"))
        result = await _controller(core, AsyncMock(return_value=_PASS)).run("Q", "Q")
        assert core.await_count == 3
        assert result.attempts == 3
        assert result.text.startswith("[CASPER OFFLINE]")
        assert "HTTP 503" in result.text
        assert result.error.startswith("[EXHAUSTED] CASPER unavailable after 3 attempts")

    @pytest.mark.asyncio
    async def test_timeouts_yield_offline_text(self):
        async def slow(**kwargs):
            await asyncio.sleep(0.2)
            return "late"

        result = await _controller(
            slow, AsyncMock(return_value=_PASS),
            settings=EngineSettings(core_timeout_ms=10, max_retries=1),
        ).run("Q", "Q")
        assert result.attempts == 2
        assert result.text.startswith("[CASPER OFFLINE]")
        assert "timed out after 10ms" in result.error

    @pytest.mark.asyncio
    async def test_empty_response_counts_as_failure(self):
        core = AsyncMock(side_effect=["", "answer"])
        result = await _controller(core, AsyncMock(return_value=_PASS)).run("Q", "Q")
        assert result.ok
        assert result.attempts == 2


class TestAttemptCallback:
    @pytest.mark.asyncio
    async def test_called_once_per_attempt(self):
        seen = []
        core = AsyncMock(side_effect=["a", RuntimeError("x"), "c"])
        judge = AsyncMock(side_effect=[_reject(), _PASS])
        await _controller(
            core, judge, on_attempt=lambda attempt, verdict: seen.append((attempt, verdict)),
        ).run("Q", "Q")
        assert [a.index for a, _ in seen] == [1, 2, 3]
        assert seen[0][1].passed is False
        assert seen[1][0].failure is not None
        assert seen[1][1] is None
        assert seen[2][1].passed is True

    @pytest.mark.asyncio
    async def test_attempt_records_call_time(self):
        seen = []

        async def slow(**kwargs):
            await asyncio.sleep(0.2)
            return "late"

        await _controller(
            slow, AsyncMock(return_value=_PASS),
            settings=EngineSettings(core_timeout_ms=20, max_retries=0),
            on_attempt=lambda attempt, verdict: seen.append(attempt),
        ).run("Q", "Q")
        assert len(seen) == 1
        assert 10 <= seen[0].elapsed_ms < 200
