# events.py
# =============================================================================
# 分析进度事件: 供外部应用实时获取分析状态。
# =============================================================================

"""Analysis progress events for external integration."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class AnalysisEvent:
    """分析过程中的结构化进度事件。

    外部应用通过注册 on_progress 回调来接收此类事件，
    实现实时进度展示、SSE 推送等集成场景。

    Attributes:
        type: 事件类型。
            - "phase_start": 阶段开始
            - "phase_end": 阶段结束
            - "core_attempt": 某核心完成一次生成+校验
            - "core_done": 某核心流程结束
            - "synthesis_attempt": Sybil 完成一次综合尝试
            - "error": 发生错误
        phase: 当前阶段 ("FANOUT" | "SYNTHESIZE")。
        run_id: 本次分析的唯一标识。
        timestamp: 事件产生时的单调时钟（秒），用于计算耗时。
        progress: 分析总进度 (0.0 ~ 1.0)。
        perspective: 相关核心名称（如 "CASPER"），仅核心事件有效。
        attempt: 尝试序号（1-based）。
        detail: 事件附加数据，结构因 type 而异。
    """

    type: str
    phase: str
    run_id: str
    timestamp: float = field(default_factory=time.monotonic)
    progress: float = 0.0
    perspective: Optional[str] = None
    attempt: Optional[int] = None
    detail: Optional[Dict[str, Any]] = None
