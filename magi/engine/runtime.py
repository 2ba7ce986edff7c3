"""MAGI 引擎运行时。 / MAGI engine runtime.

职责 / Responsibilities:
1. 上下文注入：位置与环境数据拼接为完整问题 / Build the context-injected query
2. 扇出：三个核心重试流程并发执行并全部汇合 / Run the three core pipelines concurrently, join all
3. 综合：汇合后交给 Sybil 控制器 / Hand the joined cores to the synthesis controller
4. 汇总：按声明顺序收集错误，组装 AnalysisResult / Collect errors in declaration order

不负责：模型配置与适配器创建（见 api.analyze）。
/ Not responsible for model configuration (see api.analyze).
"""

import asyncio
import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from magi.agents.core import CoreAgent
from magi.agents.judge import JudgeAgent
from magi.agents.sybil import SybilAgent
from magi.engine.context import build_full_query, has_environmental_data
from magi.engine.retry import CoreRetryController
from magi.engine.synthesis import SynthesisController
from magi.llm.config import EngineSettings
from magi.primitives.errors import ExhaustionError
from magi.primitives.events import AnalysisEvent
from magi.primitives.models import (
    AnalysisResult,
    CoreResult,
    EnvironmentalContext,
    GenerationAttempt,
    Perspective,
    ValidationVerdict,
)

logger = logging.getLogger(__name__)

# 类型别名：支持同步和异步回调 / Type alias: supports sync and async callbacks
ProgressCallback = Union[
    Callable[[AnalysisEvent], Awaitable[None]],
    Callable[[AnalysisEvent], None],
]

LLMCaller = Callable[..., Awaitable[str]]


class AnalysisRuntime:
    """一次分析的编排器。 / Orchestrates one analysis request."""

    _PHASE_WEIGHTS = {"FANOUT": 0.7, "SYNTHESIZE": 0.3}
    _PHASE_OFFSETS = {"FANOUT": 0.0, "SYNTHESIZE": 0.7}

    def __init__(
        self,
        core_callers: Mapping[Perspective, LLMCaller],
        judge_caller: LLMCaller,
        sybil_caller: LLMCaller,
        settings: Optional[EngineSettings] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        missing = [p.name for p in Perspective if p not in core_callers]
        if missing:
            raise TypeError(f"AnalysisRuntime 缺少核心调用器: {missing}")
        self._settings = settings or EngineSettings()
        self._agents = {p: CoreAgent(p, core_callers[p]) for p in Perspective}
        self._judge = JudgeAgent(judge_caller, timeout_ms=self._settings.judge_timeout_ms)
        self._sybil = SybilAgent(sybil_caller)
        self._on_progress = on_progress

    async def _emit(self, event: AnalysisEvent) -> None:
        """触发进度回调（支持同步和异步回调）。 / Emit progress callback (sync and async)."""
        if self._on_progress is None:
            return
        result = self._on_progress(event)
        if inspect.isawaitable(result):
            await result

    def _progress(self, phase: str, phase_fraction: float = 0.0) -> float:
        base = self._PHASE_OFFSETS.get(phase, 0.0)
        weight = self._PHASE_WEIGHTS.get(phase, 0.0)
        return min(1.0, base + weight * phase_fraction)

    async def run(
        self,
        query: str,
        location: Optional[str] = None,
        env_context: Optional[EnvironmentalContext] = None,
        run_id: Optional[str] = None,
    ) -> AnalysisResult:
        """执行完整分析。模型侧失败不抛出，而是体现在 errors 中。

        / Run a full analysis. Model-side failures never raise; they surface
        in AnalysisResult.errors.

        Raises:
            ValueError: query 去除空白后为空。
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("query must be a non-empty string")
        run_id = run_id or str(uuid.uuid4())[:8]
        context_present = has_environmental_data(env_context)
        logger.info(
            f"[{run_id}] 开始分析: location={location!r}, "
            f"env_context={'yes' if context_present else 'no'}"
        )

        # Phase 1: FANOUT
        await self._emit(AnalysisEvent(
            type="phase_start", phase="FANOUT", run_id=run_id,
            progress=self._progress("FANOUT", 0.0),
        ))
        full_query = build_full_query(query, location, env_context)
        cores = await self._fan_out(run_id, full_query, query, context_present)

        # 错误仅在汇合后由协调任务按声明顺序追加 / appended after the join, declaration order
        errors: List[str] = [r.error for r in cores if r.error is not None]
        for err in errors:
            await self._emit(AnalysisEvent(
                type="error", phase="FANOUT", run_id=run_id,
                progress=self._progress("FANOUT", 1.0),
                detail={"message": err},
            ))
        await self._emit(AnalysisEvent(
            type="phase_end", phase="FANOUT", run_id=run_id,
            progress=self._progress("FANOUT", 1.0),
            detail={"attempts": {r.perspective.name: r.attempts for r in cores}},
        ))

        # Phase 2: SYNTHESIZE
        await self._emit(AnalysisEvent(
            type="phase_start", phase="SYNTHESIZE", run_id=run_id,
            progress=self._progress("SYNTHESIZE", 0.0),
        ))
        max_attempts = self._settings.max_attempts

        async def _on_synthesis_attempt(n: int, passed: bool, failure: Optional[str]) -> None:
            await self._emit(AnalysisEvent(
                type="synthesis_attempt", phase="SYNTHESIZE", run_id=run_id,
                progress=self._progress("SYNTHESIZE", n / (max_attempts + 1)),
                attempt=n,
                detail={"passed": passed, "failure": failure},
            ))

        controller = SynthesisController(
            self._sybil, self._judge, self._settings, on_attempt=_on_synthesis_attempt,
        )
        synthesis = await controller.run(cores, query, location, env_context)
        if synthesis.error is not None:
            errors.append(synthesis.error)
            await self._emit(AnalysisEvent(
                type="error", phase="SYNTHESIZE", run_id=run_id,
                progress=self._progress("SYNTHESIZE", 1.0),
                detail={"message": synthesis.error},
            ))
        await self._emit(AnalysisEvent(
            type="phase_end", phase="SYNTHESIZE", run_id=run_id,
            progress=1.0,
            detail={
                "attempts": synthesis.attempts,
                "safety_coefficient": synthesis.verdict.safety_coefficient,
                "color_band": synthesis.verdict.color_band,
                "fallback": synthesis.is_fallback,
            },
        ))

        logger.info(
            f"[{run_id}] 分析完成: safety={synthesis.verdict.safety_coefficient}, "
            f"colour={synthesis.verdict.color_band}, errors={len(errors)}"
        )
        return AnalysisResult(cores=tuple(cores), verdict=synthesis.verdict, errors=errors)

    async def _fan_out(
        self,
        run_id: str,
        full_query: str,
        query: str,
        context_present: bool,
    ) -> List[CoreResult]:
        """三核心并发，全部汇合后按声明顺序返回。 / Run all cores, join, return in declaration order."""
        perspectives = list(Perspective)
        completed = {"count": 0}
        callback_errors: List[Exception] = []

        async def _guarded_emit(event: AnalysisEvent) -> None:
            try:
                await self._emit(event)
            except Exception as exc:
                callback_errors.append(exc)
                raise

        def _attempt_callback(perspective: Perspective):
            async def _on_attempt(
                attempt: GenerationAttempt, verdict: Optional[ValidationVerdict],
            ) -> None:
                detail: Dict[str, Any] = {
                    "failure": attempt.failure, "elapsed_ms": attempt.elapsed_ms,
                }
                if verdict is not None:
                    detail.update(
                        passed=verdict.passed,
                        issues=list(verdict.issues),
                        judge_error=verdict.judge_error,
                    )
                await _guarded_emit(AnalysisEvent(
                    type="core_attempt", phase="FANOUT", run_id=run_id,
                    progress=self._progress("FANOUT", completed["count"] / len(perspectives)),
                    perspective=perspective.name,
                    attempt=attempt.index,
                    detail=detail,
                ))
            return _on_attempt

        async def _pipeline(perspective: Perspective) -> CoreResult:
            controller = CoreRetryController(
                self._agents[perspective],
                self._judge,
                self._settings,
                on_attempt=_attempt_callback(perspective),
            )
            result = await controller.run(full_query, query, context_present)
            completed["count"] += 1
            await _guarded_emit(AnalysisEvent(
                type="core_done", phase="FANOUT", run_id=run_id,
                progress=self._progress("FANOUT", completed["count"] / len(perspectives)),
                perspective=perspective.name,
                attempt=result.attempts,
                detail={"ok": result.ok, "error": result.error},
            ))
            return result

        done = await asyncio.gather(
            *(_pipeline(p) for p in perspectives), return_exceptions=True,
        )
        if callback_errors:
            raise callback_errors[0]

        results: List[CoreResult] = []
        for perspective, result in zip(perspectives, done):
            if isinstance(result, Exception):
                logger.error(f"[{run_id}] {perspective.name} pipeline crashed: {result}")
                reason = str(result) or type(result).__name__
                results.append(CoreResult(
                    perspective=perspective,
                    text=perspective.offline_text(reason),
                    attempts=1,
                    error=str(ExhaustionError(f"{perspective.name} pipeline crashed: {reason}")),
                ))
            else:
                results.append(result)
        return results
