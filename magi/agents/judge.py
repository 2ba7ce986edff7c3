"""评审 Agent。 / Judge agent: rubric-bound validator for core and synthesis outputs.

评审失败永远按通过处理（fail-open）：传输错误、超时、JSON 无法解析、
缺失或畸形的 pass 字段都视为通过，避免评审成为单点故障。
/ Fails open: transport errors, timeouts, unparseable JSON and a missing or
malformed "pass" field all count as a pass.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

from magi.prompts import (
    JUDGE_CONTEXT_CHECK,
    JUDGE_CORE_TEMPLATE,
    JUDGE_NO_CONTEXT_CHECK,
    JUDGE_SYNTHESIS_CONTEXT_CHECK,
    JUDGE_SYNTHESIS_TEMPLATE,
    JUDGE_SYSTEM,
)
from magi.primitives.errors import JudgeError
from magi.primitives.models import Perspective, ValidationVerdict
from magi.utils.deadline import call_with_deadline
from magi.utils.json_parser import parse_json_from_llm

logger = logging.getLogger(__name__)

JUDGE_TEMPERATURE = 0.1

DEFAULT_FEEDBACK = (
    "Answer the query more directly and specifically while staying in your assigned perspective."
)


class JudgeAgent:
    """评审模型：对单个候选输出给出通过/否决。 / Grades one candidate against a rubric."""

    def __init__(
        self,
        llm_caller: Callable[..., Awaitable[str]],
        timeout_ms: int = 15000,
    ):
        self._llm_caller = llm_caller
        self._timeout_ms = timeout_ms

    async def evaluate(
        self,
        perspective: Perspective,
        candidate: str,
        query: str,
        context_present: bool = False,
    ) -> ValidationVerdict:
        """校验单个核心的回答。 / Validate one core's answer."""
        prompt = JUDGE_CORE_TEMPLATE.format(
            perspective_name=perspective.name,
            perspective_rubric=perspective.rubric,
            query=query,
            candidate=candidate,
            context_check=JUDGE_CONTEXT_CHECK if context_present else JUDGE_NO_CONTEXT_CHECK,
        )
        return await self._judge(perspective.name, prompt)

    async def evaluate_synthesis(
        self,
        candidate_json: str,
        transcript: str,
        context_present: bool = False,
    ) -> ValidationVerdict:
        """校验 Sybil 综合输出。 / Validate the Sybil synthesis."""
        prompt = JUDGE_SYNTHESIS_TEMPLATE.format(
            transcript=transcript,
            candidate=candidate_json,
            context_check=JUDGE_SYNTHESIS_CONTEXT_CHECK if context_present else "",
        )
        return await self._judge("SYBIL", prompt)

    async def _judge(self, subject: str, prompt: str) -> ValidationVerdict:
        label = f"JUDGE({subject})"
        outcome = await call_with_deadline(
            label,
            lambda: self._llm_caller(system_prompt=JUDGE_SYSTEM, user_prompt=prompt),
            self._timeout_ms,
        )
        if not outcome.ok:
            error = JudgeError(f"{label} unavailable, failing open: {outcome.error.message}")
            logger.warning(str(error))
            return ValidationVerdict.accept(judge_error=str(error))

        try:
            data = parse_json_from_llm(outcome.value or "")
        except ValueError as e:
            error = JudgeError(f"{label} returned unparseable output, failing open: {e}")
            logger.warning(str(error))
            return ValidationVerdict.accept(judge_error=str(error))

        verdict = self.to_verdict(data)
        if not verdict.passed:
            logger.info(f"{label} rejected candidate: {verdict.issues}")
        return verdict

    @staticmethod
    def to_verdict(data: Dict[str, Any]) -> ValidationVerdict:
        """把评审 JSON 转为 ValidationVerdict。 / Convert judge JSON into a verdict.

        只有 pass 明确为 false 才否决；否决时 feedback 必不为空。
        / Only an explicit boolean false rejects; a rejection always carries feedback.
        """
        if data.get("pass") is not False:
            return ValidationVerdict(passed=True)

        raw_issues = data.get("issues")
        issues: List[str] = []
        if isinstance(raw_issues, list):
            issues = [str(i).strip() for i in raw_issues if str(i).strip()]
        elif isinstance(raw_issues, str) and raw_issues.strip():
            issues = [raw_issues.strip()]

        feedback = data.get("feedback")
        feedback = feedback.strip() if isinstance(feedback, str) else ""
        if not feedback:
            feedback = issues[0] if issues else DEFAULT_FEEDBACK

        return ValidationVerdict(passed=False, issues=issues, feedback=feedback)
