# http.py
# =============================================================================
# 适配器共用的 HTTP 发送与重试。 / Shared HTTP send-and-retry for adapters.
#
# 仅对网络异常、HTTP 429 与 5xx（含 Anthropic 529 overloaded）做有限次重试；
# 其他 4xx（鉴权、参数错误）立即失败。
# 语义层面的重试由 engine.retry / engine.synthesis 负责，这里只处理传输层。
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


async def post_json(
    endpoint: str,
    headers: Dict[str, str],
    body: Dict[str, Any],
    *,
    api_name: str,
    model: str,
    timeout: float,
    max_retries: int,
) -> Dict[str, Any]:
    """POST JSON 并返回解析后的响应体。

    Raises:
        RuntimeError: 重试耗尽或遇到不可重试的 HTTP 错误。
    """
    total = max_retries + 1
    last_error: Exception = RuntimeError("no request sent")
    for attempt in range(1, total + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(endpoint, headers=headers, json=body)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            last_error = e
            status = e.response.status_code
            logger.warning(
                "%s 调用失败 (HTTP %d, model=%s)，第 %d/%d 次: %s",
                api_name, status, model, attempt, total, e.response.text[:200],
            )
            if not is_retryable_status(status):
                break
        except httpx.RequestError as e:
            last_error = e
            logger.warning(
                "%s 请求异常 (model=%s)，第 %d/%d 次: %s",
                api_name, model, attempt, total, e,
            )

    raise RuntimeError(f"{api_name} ({model}) 调用失败: {last_error}")
