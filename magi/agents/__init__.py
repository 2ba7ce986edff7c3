# agents/__init__.py
# =============================================================================
# MAGI Agent 模块: 三视角核心、评审与 Sybil 综合。 / Agent module: perspective cores, judge & Sybil.
# =============================================================================

from .core import CoreAgent
from .judge import JudgeAgent
from .sybil import SybilAgent

__all__ = [
    "CoreAgent",
    "JudgeAgent",
    "SybilAgent",
]
