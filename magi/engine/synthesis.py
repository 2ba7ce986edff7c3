"""Sybil 综合控制器。 / Synthesis controller.

每次尝试：综合 → 解析与自动修正 → 评审。结构失败、语义否决或调用失败
在尚有剩余次数时以通用纠正指令重试；耗尽时返回固定兜底裁决与一条错误。
/ Each attempt: synthesize, parse and auto-correct, then judge. Structural,
semantic and call failures retry with a generic correction instruction; on
exhaustion the fixed fallback verdict is returned with exactly one error.
"""

import functools
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from magi.agents.judge import JudgeAgent
from magi.agents.sybil import SybilAgent
from magi.engine.context import has_environmental_data, render_context_blocks
from magi.llm.config import EngineSettings
from magi.primitives.errors import (
    ExhaustionError,
    MagiError,
    SemanticRejection,
    StructuralParseError,
)
from magi.primitives.models import (
    FALLBACK_VERDICT,
    CoreResult,
    EnvironmentalContext,
    Perspective,
    SynthesizedVerdict,
)
from magi.utils.deadline import call_with_deadline

logger = logging.getLogger(__name__)

# (尝试序号, 是否通过, 失败原因) / (attempt, passed, failure)
SynthesisAttemptCallback = Union[
    Callable[[int, bool, Optional[str]], Awaitable[None]],
    Callable[[int, bool, Optional[str]], None],
]

SYBIL_LABEL = "SYBIL"


def build_transcript(
    cores: Sequence[CoreResult],
    query: str,
    location: Optional[str] = None,
    env_context: Optional[EnvironmentalContext] = None,
) -> str:
    """跨核心文本：各核心标签、尝试次数与最终文本，加原始问题与位置/环境。

    / Cross-core transcript in declaration order, then the query and context.
    """
    order = list(Perspective)
    sections: List[str] = [
        f"=== {r.perspective.name} ({r.perspective.lens}) | attempts: {r.attempts} ===\n{r.text}"
        for r in sorted(cores, key=lambda r: order.index(r.perspective))
    ]
    sections.append(f"=== ORIGINAL QUERY ===\n{query}")
    if location:
        sections.append(f"=== LOCATION ===\n{location}")
    env_blocks = render_context_blocks(None, env_context)
    if env_blocks:
        sections.append("=== ENVIRONMENTAL CONTEXT ===\n" + "\n\n".join(env_blocks))
    return "\n\n".join(sections)


@dataclass(frozen=True)
class SynthesisOutcome:
    verdict: SynthesizedVerdict
    attempts: int
    error: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.error is not None


class SynthesisController:
    """驱动 Sybil 直至产出通过评审的裁决或耗尽。"""

    def __init__(
        self,
        sybil: SybilAgent,
        judge: JudgeAgent,
        settings: Optional[EngineSettings] = None,
        on_attempt: Optional[SynthesisAttemptCallback] = None,
    ):
        self._sybil = sybil
        self._judge = judge
        self._settings = settings or EngineSettings()
        self._on_attempt = on_attempt

    async def _notify(self, attempt: int, passed: bool, failure: Optional[str]) -> None:
        if self._on_attempt is None:
            return
        result = self._on_attempt(attempt, passed, failure)
        if inspect.isawaitable(result):
            await result

    async def run(
        self,
        cores: Sequence[CoreResult],
        query: str,
        location: Optional[str] = None,
        env_context: Optional[EnvironmentalContext] = None,
    ) -> SynthesisOutcome:
        transcript = build_transcript(cores, query, location, env_context)
        context_present = has_environmental_data(env_context)
        max_attempts = self._settings.max_attempts
        last_error: Optional[MagiError] = None

        for n in range(1, max_attempts + 1):
            outcome = await call_with_deadline(
                SYBIL_LABEL,
                functools.partial(self._sybil.synthesize, transcript, retry=n > 1),
                self._settings.synthesis_timeout_ms,
            )
            if not outcome.ok:
                last_error = outcome.error
                logger.warning(f"Sybil attempt {n}/{max_attempts} failed: {last_error}")
                await self._notify(n, False, str(last_error))
                continue

            try:
                verdict = SybilAgent.parse_verdict(outcome.value or "")
            except StructuralParseError as e:
                last_error = e
                logger.warning(f"Sybil attempt {n}/{max_attempts} unparseable: {e}")
                await self._notify(n, False, str(e))
                continue

            judged = await self._judge.evaluate_synthesis(
                json.dumps(verdict.to_dict(), ensure_ascii=False),
                transcript,
                context_present=context_present,
            )
            if judged.passed:
                logger.info(
                    f"Sybil accepted on attempt {n}/{max_attempts}: "
                    f"safety={verdict.safety_coefficient} colour={verdict.color_band}"
                )
                await self._notify(n, True, None)
                return SynthesisOutcome(verdict=verdict, attempts=n)

            last_error = SemanticRejection(SYBIL_LABEL, judged.issues)
            logger.info(f"Sybil rejected on attempt {n}/{max_attempts}: {last_error.message}")
            await self._notify(n, False, str(last_error))

        reason = last_error.message if last_error is not None else "no output"
        error = ExhaustionError(
            f"{SYBIL_LABEL} synthesis exhausted after {max_attempts} attempts: {reason}"
        )
        logger.error(f"{error}; using fallback verdict")
        return SynthesisOutcome(verdict=FALLBACK_VERDICT, attempts=max_attempts, error=str(error))
