"""Sybil 综合 Agent。 / Sybil agent: merges the three MAGI cores into one verdict.

职责 / Responsibilities:
1. 调用综合模型 / Call the synthesis model
2. 解析 JSON、结构校验、色带自动修正 / Parse, structurally check and auto-correct

不负责：跨核心文本构建、重试与评审（由 engine.synthesis 编排）。
/ Not responsible for the transcript, retries or judging (see engine.synthesis).
"""

import logging
import math
from typing import Any, Awaitable, Callable, Dict, Optional

from magi.prompts import SYBIL_RETRY_INSTRUCTION, SYBIL_SYSTEM
from magi.primitives.errors import StructuralParseError
from magi.primitives.models import (
    COLOR_BANDS,
    Scenario,
    SynthesizedVerdict,
    clamp_percent,
    color_band_for,
)
from magi.utils.json_parser import parse_json_from_llm

logger = logging.getLogger(__name__)

# 模型输出中色带字段的可接受键名（按优先级） / Accepted colour keys, by priority
_COLOR_KEYS = ("psychoPassColor", "colorBand")


class SybilAgent:
    """Sybil 综合核心。 / Sybil synthesis core."""

    def __init__(self, llm_caller: Callable[..., Awaitable[str]]):
        self._llm_caller = llm_caller

    async def synthesize(self, transcript: str, retry: bool = False) -> str:
        """调用综合模型，返回原始文本。 / Call the synthesis model and return raw text."""
        prompt = transcript + SYBIL_RETRY_INSTRUCTION if retry else transcript
        return await self._llm_caller(system_prompt=SYBIL_SYSTEM, user_prompt=prompt)

    @staticmethod
    def parse_verdict(raw: str) -> SynthesizedVerdict:
        """解析 + 结构校验 + 自动修正。 / Parse, structurally check and auto-correct.

        色带总是由 safetyCoefficient 重新计算并覆盖模型给出的值；
        scenarios 缺失或不是列表时置为空元组。
        / The colour band is always recomputed from safetyCoefficient;
        a missing or non-list scenarios becomes ().

        Raises:
            StructuralParseError: 非 JSON 对象、safetyCoefficient 非数值或色带非法。
        """
        try:
            data = parse_json_from_llm(raw)
        except ValueError as e:
            raise StructuralParseError(f"synthesis output is not a JSON object: {e}") from e

        coefficient = data.get("safetyCoefficient")
        if (
            isinstance(coefficient, bool)
            or not isinstance(coefficient, (int, float))
            or not math.isfinite(coefficient)
        ):
            raise StructuralParseError(
                f"safetyCoefficient missing or not a number: {coefficient!r}"
            )

        emitted = _emitted_color(data)
        if emitted not in COLOR_BANDS:
            raise StructuralParseError(f"invalid colour band: {emitted!r}")

        safety = clamp_percent(coefficient, default=50)
        color = color_band_for(safety)
        if color != emitted:
            logger.info(
                f"Sybil colour corrected: safetyCoefficient={safety}, "
                f"model said '{emitted}', using '{color}'"
            )

        raw_scenarios = data.get("scenarios")
        if not isinstance(raw_scenarios, list):
            raw_scenarios = []

        return SynthesizedVerdict(
            safety_coefficient=safety,
            escalation_risk_24h=clamp_percent(data.get("escalationRisk24h"), default=50),
            dominant_threat=_text(data.get("dominantThreat")),
            color_band=color,
            executive_summary=_text(data.get("executiveSummary")),
            scenarios=tuple(
                Scenario.from_dict(s) for s in raw_scenarios if isinstance(s, dict)
            ),
            final_verdict=_text(data.get("finalVerdict")),
        )


def _emitted_color(data: Dict[str, Any]) -> Optional[str]:
    for key in _COLOR_KEYS:
        value = data.get(key)
        if isinstance(value, str):
            return value.strip().lower()
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
