# tests/engine/test_synthesis.py
# Sybil 综合控制器测试 / Synthesis controller tests

import json

import pytest
from unittest.mock import AsyncMock

from magi.agents.judge import JudgeAgent
from magi.agents.sybil import SybilAgent
from magi.engine.synthesis import SynthesisController, build_transcript
from magi.primitives.models import (
    FALLBACK_VERDICT,
    CoreResult,
    EnvironmentalContext,
    Perspective,
)
from magi.prompts import SYBIL_RETRY_INSTRUCTION

_PASS = json.dumps({"pass": True, "issues": [], "feedback": ""})
_REJECT = json.dumps({
    "pass": False,
    "issues": ["Ignores BALTHASAR"],
    "feedback": "Integrate the empathy core.",
})

_VERDICT = json.dumps({
    "safetyCoefficient": 62,
    "escalationRisk24h": 35,
    "dominantThreat": "Road closures",
    "psychoPassColor": "orange",
    "executiveSummary": "Moderate risk.",
    "scenarios": [],
    "finalVerdict": "Prepare to evacuate.",
})


def _cores():
    # 故意乱序 / deliberately unordered
    return [
        CoreResult(Perspective.MELCHIOR, "Gut says leave early.", 1),
        CoreResult(Perspective.CASPER, "30% chance of flooding.", 2),
        CoreResult(Perspective.BALTHASAR, "Elderly residents need help.", 1),
    ]


def _controller(sybil_caller, judge_caller):
    return SynthesisController(SybilAgent(sybil_caller), JudgeAgent(judge_caller))


class TestBuildTranscript:
    def test_declaration_order_with_attempts(self):
        transcript = build_transcript(_cores(), "Assess evacuation risk")
        casper = transcript.index("=== CASPER (Logic) | attempts: 2 ===")
        balthasar = transcript.index("=== BALTHASAR (Empathy) | attempts: 1 ===")
        melchior = transcript.index("=== MELCHIOR (Intuition) | attempts: 1 ===")
        assert casper < balthasar < melchior
        assert "=== ORIGINAL QUERY ===\nAssess evacuation risk" in transcript
        assert "=== LOCATION ===" not in transcript

    def test_location_and_environment(self):
        env = EnvironmentalContext.from_dict({
            "fires": {"totalPoints": 3, "groups": 1, "highestFrp": 10.5, "summary": "Small."},
        })
        transcript = build_transcript(_cores(), "Q", "Valencia", env)
        assert "=== LOCATION ===\nValencia" in transcript
        assert "=== ENVIRONMENTAL CONTEXT ===" in transcript
        assert "NASA FIRMS" in transcript
        assert "[Location context" not in transcript


class TestSynthesisController:
    @pytest.mark.asyncio
    async def test_accepts_corrected_verdict(self):
        judge = AsyncMock(return_value=_PASS)
        outcome = await _controller(AsyncMock(return_value=_VERDICT), judge).run(_cores(), "Q")
        assert outcome.error is None
        assert outcome.attempts == 1
        assert outcome.verdict.safety_coefficient == 62
        assert outcome.verdict.color_band == "yellow"
        candidate = judge.call_args.kwargs["user_prompt"]
        assert '"psychoPassColor": "yellow"' in candidate

    @pytest.mark.asyncio
    async def test_non_json_every_attempt_falls_back(self):
        sybil = AsyncMock(return_value="I cannot produce JSON today.")
        judge = AsyncMock(return_value=_PASS)
        outcome = await _controller(sybil, judge).run(_cores(), "Q")
        assert outcome.verdict == FALLBACK_VERDICT
        assert outcome.is_fallback
        assert outcome.error.startswith("[EXHAUSTED] SYBIL synthesis exhausted after 3 attempts")
        assert sybil.await_count == 3
        assert judge.await_count == 0

    @pytest.mark.asyncio
    async def test_retry_uses_generic_instruction_only(self):
        sybil = AsyncMock(return_value=_VERDICT)
        judge = AsyncMock(side_effect=[_REJECT, _PASS])
        outcome = await _controller(sybil, judge).run(_cores(), "Q")
        assert outcome.attempts == 2
        assert outcome.error is None
        first, second = sybil.call_args_list
        assert SYBIL_RETRY_INSTRUCTION not in first.kwargs["user_prompt"]
        assert second.kwargs["user_prompt"].endswith(SYBIL_RETRY_INSTRUCTION)
        assert "Integrate the empathy core." not in second.kwargs["user_prompt"]

    @pytest.mark.asyncio
    async def test_structural_then_valid(self):
        sybil = AsyncMock(side_effect=['{"safetyCoefficient": "n/a"}', _VERDICT])
        outcome = await _controller(sybil, AsyncMock(return_value=_PASS)).run(_cores(), "Q")
        assert outcome.attempts == 2
        assert outcome.verdict.color_band == "yellow"

    @pytest.mark.asyncio
    async def test_transport_failures_fall_back(self):
        sybil = AsyncMock(side_effect=RuntimeError("HTTP 529"))
        outcome = await _controller(sybil, AsyncMock(return_value=_PASS)).run(_cores(), "Q")
        assert outcome.verdict == FALLBACK_VERDICT
        assert "HTTP 529" in outcome.error

    @pytest.mark.asyncio
    async def test_semantic_exhaustion_falls_back(self):
        outcome = await _controller(
            AsyncMock(return_value=_VERDICT), AsyncMock(return_value=_REJECT),
        ).run(_cores(), "Q")
        assert outcome.verdict == FALLBACK_VERDICT
        assert "Ignores BALTHASAR" in outcome.error

    @pytest.mark.asyncio
    async def test_judge_failure_fails_open(self):
        outcome = await _controller(
            AsyncMock(return_value=_VERDICT), AsyncMock(side_effect=RuntimeError("down")),
        ).run(_cores(), "Q")
        assert outcome.error is None
        assert outcome.verdict.safety_coefficient == 62

    @pytest.mark.asyncio
    async def test_attempt_callback(self):
        seen = []
        controller = SynthesisController(
            SybilAgent(AsyncMock(side_effect=["junk", _VERDICT])),
            JudgeAgent(AsyncMock(return_value=_PASS)),
            on_attempt=lambda n, passed, failure: seen.append((n, passed, failure)),
        )
        await controller.run(_cores(), "Q")
        assert seen[0][0] == 1 and seen[0][1] is False
        assert seen[0][2].startswith("[STRUCTURAL]")
        assert seen[1] == (2, True, None)

    @pytest.mark.asyncio
    async def test_fallback_identical_across_runs(self):
        controller = _controller(AsyncMock(return_value="not json"), AsyncMock(return_value=_PASS))
        first = await controller.run(_cores(), "Q")
        with pytest.raises(AttributeError):
            first.verdict.scenarios.append("stale")
        second = await controller.run(_cores(), "Q")
        assert second.verdict == FALLBACK_VERDICT
        assert second.verdict.scenarios == ()
