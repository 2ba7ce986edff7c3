# errors.py
# =============================================================================
# MAGI 错误分类定义。 / MAGI error taxonomy.
#
# 错误列表中的每一项都是下列异常之一的 str()，因此自带错误码前缀。
# / Every entry in AnalysisResult.errors is the str() of one of these, so each
#   carries its bracketed code.
# =============================================================================

from __future__ import annotations


# -----------------------------------------------------------------------------
# 错误码 / Error codes
# -----------------------------------------------------------------------------
TRANSPORT = "TRANSPORT"
TIMEOUT = "TIMEOUT"
JUDGE = "JUDGE"
STRUCTURAL = "STRUCTURAL"
REJECTED = "REJECTED"
OFFLINE = "OFFLINE"
EXHAUSTED = "EXHAUSTED"


class MagiError(Exception):
    """MAGI 错误基类: 携带错误码与诊断信息。 / Base error carrying a code and message."""

    code = "MAGI"

    def __init__(self, message: str, code: str = "") -> None:
        self.code = code or self.code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class TransportError(MagiError):
    """模型端点调用失败。 / Model endpoint call failed."""

    code = TRANSPORT

    def __init__(self, label: str, cause: BaseException) -> None:
        self.label = label
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"{label} failed: {detail}")


class CallTimeoutError(MagiError, TimeoutError):
    """调用超过截止时间。 / Call exceeded its deadline."""

    code = TIMEOUT

    def __init__(self, label: str, timeout_ms: int) -> None:
        self.label = label
        self.timeout_ms = timeout_ms
        super().__init__(f"{label} timed out after {timeout_ms}ms")


class JudgeError(MagiError):
    """评审模型自身失败；始终按通过处理，不进入错误列表。 / Judge call failed; always fails open."""

    code = JUDGE


class StructuralParseError(MagiError):
    """综合输出无法解析或缺少必填字段。 / Synthesis output unparseable or missing required fields."""

    code = STRUCTURAL


class SemanticRejection(MagiError):
    """评审模型明确否决候选输出。 / Judge explicitly rejected a candidate."""

    code = REJECTED

    def __init__(self, label: str, issues: list) -> None:
        self.label = label
        self.issues = list(issues)
        summary = "; ".join(self.issues) if self.issues else "no issues listed"
        super().__init__(f"{label} rejected: {summary}")


class OfflineMarkerError(MagiError):
    """核心自报离线。 / Core reported itself offline."""

    code = OFFLINE


class ExhaustionError(MagiError):
    """重试上限耗尽仍未通过。 / Retry ceiling reached without acceptance."""

    code = EXHAUSTED
