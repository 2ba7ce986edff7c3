"""上下文注入：位置与环境数据渲染为提示前缀。 / Render location and environmental context into a prompt prefix.

纯函数，无网络或模型访问。块顺序固定：
位置 → ACLED 冲突 → GDELT 冲突 → 火点 → 空气质量 → 摄像头 → 原始问题。
/ Pure functions. Block order is fixed: location, ACLED, GDELT, fires,
air quality, webcams, then the raw query.
"""

from typing import List, Optional

from magi.primitives.models import EnvironmentalContext


def _na(value) -> str:
    return "N/A" if value is None else str(value)


def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_context_blocks(
    location: Optional[str] = None,
    env_context: Optional[EnvironmentalContext] = None,
) -> List[str]:
    """返回各前缀块（不含原始问题）。 / Return prefix blocks, query excluded."""
    blocks: List[str] = []
    if location:
        blocks.append(f"[Location context: {location}]")
    if env_context is None:
        return blocks

    acled = env_context.acled
    if acled is not None:
        blocks.append(
            "[CONFLICT DATA — TIER 1: ACLED VERIFIED (analyst-curated, highest confidence)]\n"
            f"{acled.total_events} verified conflict events over {acled.time_range}.\n"
            f"Total fatalities: {acled.fatalities}.\n"
            f"Event types: {', '.join(acled.event_types)}.\n"
            f"{acled.summary}"
        )

    gdelt = env_context.gdelt
    if gdelt is not None:
        blocks.append(
            "[CONFLICT DATA — TIER 2: GDELT REAL-TIME (auto-coded, 15-min updates, includes sentiment)]\n"
            f"{gdelt.total_events} articles detected "
            f"({gdelt.geolocated_events} geolocated to viewport).\n"
            f"Average media tone: {gdelt.avg_tone:.1f} "
            "(scale: -100 very negative to +100 very positive).\n"
            f"Top sources: {', '.join(gdelt.top_sources)}.\n"
            f"{gdelt.summary}\n"
            "NOTE: GDELT is auto-coded from news articles and may include duplicates "
            "or miscodings. Cross-reference with ACLED for ground truth."
        )

    fires = env_context.fires
    if fires is not None:
        frp = "N/A" if fires.highest_frp is None else _format_number(fires.highest_frp)
        blocks.append(
            f"[ENVIRONMENTAL DATA — NASA FIRMS Fire Detections: {fires.total_points} fire "
            f"points in {fires.groups} clusters. Highest FRP: {frp} MW. {fires.summary}]"
        )

    air = env_context.air_quality
    if air is not None:
        blocks.append(
            f"[ENVIRONMENTAL DATA — OpenAQ Air Quality: {air.stations} monitoring stations. "
            f"PM2.5 range: {_na(air.pm25_range)}. Worst parameter: {_na(air.worst_parameter)}. "
            f"{air.summary}]"
        )

    cams = env_context.webcams
    if cams is not None:
        categories = ", ".join(cams.categories) or "general"
        blocks.append(
            f"[ENVIRONMENTAL DATA — Public Webcams: {cams.active_count} active cameras "
            f"({cams.total} total). Categories: {categories}. {cams.summary}]"
        )

    return blocks


def build_full_query(
    query: str,
    location: Optional[str] = None,
    env_context: Optional[EnvironmentalContext] = None,
) -> str:
    """前缀块 + 原始问题，以空行连接。 / Prefix blocks then the query, blank-line separated."""
    return "\n\n".join(render_context_blocks(location, env_context) + [query])


def has_environmental_data(env_context: Optional[EnvironmentalContext]) -> bool:
    return env_context is not None and not env_context.is_empty
