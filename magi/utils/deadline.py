"""带截止时间的调用器。 / Deadline-bounded invoker.

先完成者胜出：超时后返回 CallTimeoutError 结果，底层调用被放弃而不是取消，
其结果（若最终到达）被丢弃。
/ First to complete wins. On expiry the in-flight call is abandoned, not
cancelled; its eventual result is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Set, TypeVar

from magi.primitives.errors import CallTimeoutError, MagiError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 被放弃的任务需保持强引用直到结束，否则可能被提前回收
# / Abandoned tasks are strongly referenced until they finish.
_ABANDONED: Set["asyncio.Future[Any]"] = set()


@dataclass(frozen=True)
class CallOutcome(Generic[T]):
    """一次受限调用的结果：value 与 error 二者恰有其一。 / Exactly one of value/error is set."""
    value: Optional[T] = None
    error: Optional[MagiError] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def _discard_abandoned(task: "asyncio.Future[Any]") -> None:
    _ABANDONED.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Abandoned call finished with error (discarded): {exc}")
    else:
        logger.debug("Abandoned call finished late; result discarded.")


async def call_with_deadline(
    label: str,
    work: Callable[[], Awaitable[T]],
    timeout_ms: int,
) -> CallOutcome[T]:
    """在 timeout_ms 内执行 work()。 / Run work() within timeout_ms.

    Args:
        label: 调用标识，写入错误信息（如 "CASPER"、"JUDGE(BALTHASAR)"）。
        work: 无参协程工厂。
        timeout_ms: 截止时间（毫秒）。

    Returns:
        CallOutcome：成功时 value 有值；超时为 CallTimeoutError；
        其他任何异常包装为 TransportError。从不抛出。
    """
    loop = asyncio.get_running_loop()
    started = loop.time()
    try:
        task = asyncio.ensure_future(work())
    except Exception as exc:
        return CallOutcome(error=TransportError(label, exc))

    done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    elapsed_ms = int((loop.time() - started) * 1000)

    if not done:
        _ABANDONED.add(task)
        task.add_done_callback(_discard_abandoned)
        logger.warning(f"{label} exceeded its {timeout_ms}ms deadline; call abandoned.")
        return CallOutcome(
            error=CallTimeoutError(label, timeout_ms), elapsed_ms=elapsed_ms,
        )

    if task.cancelled():
        return CallOutcome(
            error=TransportError(label, asyncio.CancelledError("call cancelled")),
            elapsed_ms=elapsed_ms,
        )

    exc = task.exception()
    if exc is not None:
        return CallOutcome(error=TransportError(label, exc), elapsed_ms=elapsed_ms)
    return CallOutcome(value=task.result(), elapsed_ms=elapsed_ms)
