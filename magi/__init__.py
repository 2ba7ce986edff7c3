# magi/__init__.py
# =============================================================================
# MAGI: 多视角咨询分析引擎。 / Multi-perspective advisory analysis engine.
# =============================================================================

"""MAGI: 多视角咨询分析引擎。 / Multi-perspective advisory analysis engine."""

from magi.api.analyze import analyze

__version__ = "0.1.0"
__all__ = ["analyze", "__version__"]
