"""单核心重试控制器。 / Per-core retry controller.

状态机 / State machine:
    Generating(n) → Validating(n) → Accepted | Regenerating(n+1) | Exhausted

- 评审通过 → Accepted
- 评审否决且 n < 上限 → 携带评审反馈重新生成
- 评审否决且 n == 上限 → Exhausted（保留最后一次文本）
- 生成失败（超时/传输）且 n < 上限 → 以相同反馈状态重试
- 生成失败且 n == 上限 → 离线标记文本
- 以离线标记开头的输出 → 直接 Exhausted，不送评审
"""

import functools
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from magi.agents.core import CoreAgent
from magi.agents.judge import JudgeAgent
from magi.llm.config import EngineSettings
from magi.primitives.errors import ExhaustionError, OfflineMarkerError, SemanticRejection
from magi.primitives.models import CoreResult, GenerationAttempt, ValidationVerdict
from magi.utils.deadline import call_with_deadline

logger = logging.getLogger(__name__)

# 每次尝试结束后的回调：(尝试记录, 评审结果或 None) / Called after every attempt
AttemptCallback = Union[
    Callable[[GenerationAttempt, Optional[ValidationVerdict]], Awaitable[None]],
    Callable[[GenerationAttempt, Optional[ValidationVerdict]], None],
]


class CoreRetryController:
    """驱动一个核心直至通过或耗尽。 / Drives one core until accepted or exhausted."""

    def __init__(
        self,
        agent: CoreAgent,
        judge: JudgeAgent,
        settings: Optional[EngineSettings] = None,
        on_attempt: Optional[AttemptCallback] = None,
    ):
        self._agent = agent
        self._judge = judge
        self._settings = settings or EngineSettings()
        self._on_attempt = on_attempt

    @property
    def perspective(self):
        return self._agent.perspective

    async def _notify(
        self, attempt: GenerationAttempt, verdict: Optional[ValidationVerdict],
    ) -> None:
        if self._on_attempt is None:
            return
        result = self._on_attempt(attempt, verdict)
        if inspect.isawaitable(result):
            await result

    async def run(
        self,
        full_query: str,
        query: str,
        context_present: bool = False,
    ) -> CoreResult:
        """执行完整的生成-评审循环。 / Run the full generate/validate loop.

        Args:
            full_query: 已注入上下文的完整问题（发送给核心）。
            query: 原始问题（发送给评审）。
            context_present: 上游是否提供了环境数据。
        """
        perspective = self._agent.perspective
        name = perspective.name
        max_attempts = self._settings.max_attempts
        feedback: Optional[str] = None
        last_rejection: Optional[SemanticRejection] = None
        last_text = ""

        for n in range(1, max_attempts + 1):
            outcome = await call_with_deadline(
                name,
                functools.partial(self._agent.generate, full_query, feedback),
                self._settings.core_timeout_ms,
            )

            if not outcome.ok:
                reason = outcome.error.message
                logger.warning(f"{name} attempt {n}/{max_attempts} failed: {outcome.error}")
                await self._notify(
                    GenerationAttempt(
                        index=n, feedback=feedback, failure=str(outcome.error),
                        elapsed_ms=outcome.elapsed_ms,
                    ),
                    None,
                )
                if n < max_attempts:
                    continue
                return CoreResult(
                    perspective=perspective,
                    text=perspective.offline_text(reason),
                    attempts=n,
                    error=str(ExhaustionError(
                        f"{name} unavailable after {n} attempts: {reason}"
                    )),
                )

            text = outcome.value
            last_text = text
            attempt = GenerationAttempt(
                index=n, text=text, feedback=feedback, elapsed_ms=outcome.elapsed_ms,
            )

            if text.startswith(perspective.offline_marker):
                logger.warning(f"{name} reported itself offline on attempt {n}")
                await self._notify(attempt, None)
                return CoreResult(
                    perspective=perspective,
                    text=text,
                    attempts=n,
                    error=str(OfflineMarkerError(f"{name} reported offline: {text}")),
                )

            verdict = await self._judge.evaluate(
                perspective, text, query, context_present=context_present,
            )
            await self._notify(attempt, verdict)

            if verdict.passed:
                logger.info(f"{name} accepted on attempt {n}/{max_attempts}")
                return CoreResult(perspective=perspective, text=text, attempts=n)

            last_rejection = SemanticRejection(name, verdict.issues)
            feedback = verdict.feedback
            logger.info(f"{name} rejected on attempt {n}/{max_attempts}: {last_rejection.message}")

        return CoreResult(
            perspective=perspective,
            text=last_text,
            attempts=max_attempts,
            error=str(ExhaustionError(
                f"{name} failed validation after {max_attempts} attempts: "
                f"{last_rejection.message if last_rejection else 'no accepted output'}"
            )),
        )
