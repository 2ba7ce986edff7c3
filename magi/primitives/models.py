# models.py
# =============================================================================
# 本模块定义 MAGI 分析引擎的所有核心数据模型。
# 包含：Perspective、GenerationAttempt、ValidationVerdict、CoreResult、
#       Scenario、SynthesizedVerdict、AnalysisResult、EnvironmentalContext。
# / Core data models of the MAGI analysis engine.
# =============================================================================

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from magi import prompts


# =============================================================================
# 视角注册表 / Perspective registry
# =============================================================================


class Perspective(enum.Enum):
    """MAGI 三核心：封闭集合，声明顺序即呈现顺序。

    / The three MAGI cores. Closed set; declaration order is presentation order.
    """

    CASPER = ("casper", "Logic", prompts.CASPER_SYSTEM, prompts.CASPER_RUBRIC)
    BALTHASAR = ("balthasar", "Empathy", prompts.BALTHASAR_SYSTEM, prompts.BALTHASAR_RUBRIC)
    MELCHIOR = ("melchior", "Intuition", prompts.MELCHIOR_SYSTEM, prompts.MELCHIOR_RUBRIC)

    def __init__(self, role: str, lens: str, system_prompt: str, rubric: str):
        self.role = role  # LLM 配置中的角色名 / role key in llm_config
        self.lens = lens
        self.system_prompt = system_prompt
        self.rubric = rubric

    @property
    def offline_marker(self) -> str:
        """核心自报离线的前缀。 / Prefix a core uses to report itself unavailable."""
        return f"[{self.name} OFFLINE]"

    def offline_text(self, reason: str) -> str:
        return f"{self.offline_marker} Core unavailable. Error: {reason}"


# =============================================================================
# 色带 / Colour band
# =============================================================================

COLOR_BANDS: Tuple[str, ...] = ("green", "yellow", "orange", "red")


def color_band_for(safety_coefficient: float) -> str:
    """根据安全系数计算色带。 / Derive the colour band from the safety coefficient.

    >= 75 green, 50-74 yellow, 25-49 orange, < 25 red.
    """
    if safety_coefficient >= 75:
        return "green"
    if safety_coefficient >= 50:
        return "yellow"
    if safety_coefficient >= 25:
        return "orange"
    return "red"


# =============================================================================
# 生成与校验 / Generation & validation
# =============================================================================


@dataclass(frozen=True)
class GenerationAttempt:
    """单次核心生成尝试。 / One invocation of a perspective core."""
    index: int  # 1-based
    text: str = ""
    feedback: Optional[str] = None  # 仅重试时存在 / present on retries only
    failure: Optional[str] = None
    elapsed_ms: int = 0  # 本次调用耗时 / wall time of the call


@dataclass(frozen=True)
class ValidationVerdict:
    """评审结果。 / Result of a judge call.

    passed 为 False 且评审未出错时，feedback 必不为空。
    / feedback is non-empty whenever passed is False and the judge did not error.
    """
    passed: bool
    issues: List[str] = field(default_factory=list)
    feedback: str = ""
    judge_error: Optional[str] = None  # 评审自身出错（已按通过处理） / judge failed open

    @classmethod
    def accept(cls, judge_error: Optional[str] = None) -> ValidationVerdict:
        return cls(passed=True, judge_error=judge_error)


@dataclass(frozen=True)
class CoreResult:
    """单个核心重试流程的终态。 / Terminal state of one retry controller run."""
    perspective: Perspective
    text: str
    attempts: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Sybil 综合裁决 / Sybil synthesized verdict
# =============================================================================


@dataclass(frozen=True)
class Scenario:
    """单个情景预测。 / One forecast scenario."""
    timeframe: str
    probability: int
    description: str
    recommended_action: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Scenario:
        return cls(
            timeframe=str(data.get("timeframe", "")),
            probability=clamp_percent(data.get("probability"), default=0),
            description=str(data.get("description", "")),
            recommended_action=str(data.get("recommendedAction", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframe": self.timeframe,
            "probability": self.probability,
            "description": self.description,
            "recommendedAction": self.recommended_action,
        }


@dataclass(frozen=True)
class SynthesizedVerdict:
    """Sybil 结构化裁决。 / Structured verdict produced by synthesis.

    color_band 由 safety_coefficient 推导，不信任模型输出。
    / color_band is derived from safety_coefficient, never trusted from the model.
    """
    safety_coefficient: int
    escalation_risk_24h: int
    dominant_threat: str
    color_band: str
    executive_summary: str
    scenarios: Tuple[Scenario, ...]
    final_verdict: str

    @property
    def is_color_consistent(self) -> bool:
        return self.color_band == color_band_for(self.safety_coefficient)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safetyCoefficient": self.safety_coefficient,
            "escalationRisk24h": self.escalation_risk_24h,
            "dominantThreat": self.dominant_threat,
            "psychoPassColor": self.color_band,
            "executiveSummary": self.executive_summary,
            "scenarios": [s.to_dict() for s in self.scenarios],
            "finalVerdict": self.final_verdict,
        }


FALLBACK_VERDICT = SynthesizedVerdict(
    safety_coefficient=50,
    escalation_risk_24h=50,
    dominant_threat="Synthesis error - manual review required",
    color_band="yellow",
    executive_summary=(
        "The Sybil synthesis core could not produce a validated assessment. "
        "Individual MAGI core outputs are still available for manual review. "
        "Proceed with caution."
    ),
    scenarios=(),
    final_verdict="Manual assessment recommended. Core outputs available above.",
)


def clamp_percent(value: Any, default: int) -> int:
    """将 LLM 输出的数值规整为 0-100 的整数。 / Coerce an LLM number into an int in [0, 100]."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return default
    else:
        return default
    if not math.isfinite(number):
        return default
    return max(0, min(100, int(round(number))))


# =============================================================================
# 最终结果 / Public result
# =============================================================================


@dataclass(frozen=True)
class AnalysisResult:
    """一次分析请求的公开输出。 / Public output of one analysis request."""
    cores: Tuple[CoreResult, ...]  # 按 Perspective 声明顺序 / declaration order
    verdict: SynthesizedVerdict
    errors: List[str] = field(default_factory=list)

    def core(self, perspective: Perspective) -> CoreResult:
        for result in self.cores:
            if result.perspective is perspective:
                return result
        raise KeyError(perspective.name)

    def text(self, perspective: Perspective) -> str:
        return self.core(perspective).text

    @property
    def degraded(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            r.perspective.role: r.text for r in self.cores
        }
        data["sybil"] = self.verdict.to_dict()
        data["errors"] = list(self.errors)
        data["attempts"] = {r.perspective.role: r.attempts for r in self.cores}
        return data


# =============================================================================
# 环境上下文（外部提供，只读） / Environmental context (external, read-only)
# =============================================================================


@dataclass(frozen=True)
class FireSummary:
    """NASA FIRMS 火点摘要。 / Fire detection summary."""
    total_points: int
    groups: int
    highest_frp: Optional[float]
    summary: str


@dataclass(frozen=True)
class AirQualitySummary:
    """OpenAQ 空气质量摘要。 / Air-quality summary."""
    stations: int
    pm25_range: Optional[str]
    worst_parameter: Optional[str]
    summary: str


@dataclass(frozen=True)
class WebcamSummary:
    """公共摄像头摘要。 / Public webcam summary."""
    total: int
    active_count: int
    categories: Tuple[str, ...]
    summary: str


@dataclass(frozen=True)
class CuratedConflictSummary:
    """ACLED 人工核验冲突事件摘要。 / ACLED curated conflict summary."""
    total_events: int
    fatalities: int
    event_types: Tuple[str, ...]
    time_range: str
    summary: str


@dataclass(frozen=True)
class RealtimeConflictSummary:
    """GDELT 实时冲突信号摘要。 / GDELT real-time conflict summary."""
    total_events: int
    geolocated_events: int
    avg_tone: float
    top_sources: Tuple[str, ...]
    summary: str


@dataclass(frozen=True)
class EnvironmentalContext:
    """环境上下文：各子字段独立可选。 / Environmental context; every sub-field is optional."""
    fires: Optional[FireSummary] = None
    air_quality: Optional[AirQualitySummary] = None
    webcams: Optional[WebcamSummary] = None
    acled: Optional[CuratedConflictSummary] = None
    gdelt: Optional[RealtimeConflictSummary] = None

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.fires, self.air_quality, self.webcams, self.acled, self.gdelt)
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional[EnvironmentalContext]:
        """从前端 camelCase 字典构建。 / Build from the camelCase wire dict.

        无法识别的子字段被忽略；非字典子字段视为缺失。
        / Unknown sub-fields are ignored; non-dict sub-fields count as absent.
        """
        if not data:
            return None

        def _section(key: str) -> Optional[Dict[str, Any]]:
            value = data.get(key)
            return value if isinstance(value, dict) else None

        fires = _section("fires")
        air = _section("airQuality")
        cams = _section("webcams")
        acled = _section("acled")
        gdelt = _section("gdelt")

        return cls(
            fires=FireSummary(
                total_points=int(fires.get("totalPoints", 0)),
                groups=int(fires.get("groups", 0)),
                highest_frp=_optional_float(fires.get("highestFrp")),
                summary=str(fires.get("summary", "")),
            ) if fires is not None else None,
            air_quality=AirQualitySummary(
                stations=int(air.get("stations", 0)),
                pm25_range=air.get("pm25Range"),
                worst_parameter=air.get("worstParameter"),
                summary=str(air.get("summary", "")),
            ) if air is not None else None,
            webcams=WebcamSummary(
                total=int(cams.get("total", 0)),
                active_count=int(cams.get("activeCount", 0)),
                categories=_str_tuple(cams.get("categories")),
                summary=str(cams.get("summary", "")),
            ) if cams is not None else None,
            acled=CuratedConflictSummary(
                total_events=int(acled.get("totalEvents", 0)),
                fatalities=int(acled.get("fatalities", 0)),
                event_types=_str_tuple(acled.get("eventTypes")),
                time_range=str(acled.get("timeRange", "")),
                summary=str(acled.get("summary", "")),
            ) if acled is not None else None,
            gdelt=RealtimeConflictSummary(
                total_events=int(gdelt.get("totalEvents", 0)),
                geolocated_events=int(gdelt.get("geolocatedEvents", 0)),
                avg_tone=float(gdelt.get("avgTone", 0.0)),
                top_sources=_str_tuple(gdelt.get("topSources")),
                summary=str(gdelt.get("summary", "")),
            ) if gdelt is not None else None,
        )


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _str_tuple(value: Any) -> Tuple[str, ...]:
    """列表字段规整为字符串元组；单个字符串视为一个元素。"""
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return ()
