# engine/__init__.py
# =============================================================================
# MAGI 引擎模块: 生成 → 评审 → 重试 → 综合。 / Generate, validate, retry, synthesize.
# =============================================================================

from magi.engine.runtime import AnalysisRuntime, ProgressCallback

__all__ = [
    "AnalysisRuntime",
    "ProgressCallback",
]
