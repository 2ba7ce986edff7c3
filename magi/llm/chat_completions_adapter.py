# chat_completions_adapter.py
# =============================================================================
# OpenAI 兼容 Chat Completions 适配器（OpenAI / DeepSeek / xAI Grok）
#
# 默认承载三个 MAGI 核心与评审角色。
#
# URL 兼容性：
#   https://api.deepseek.com               -> 追加 /chat/completions
#   https://api.x.ai/v1/chat/completions   -> 原样使用
#
# 请求 / 响应：
#   {"model", "messages": [system?, user], "temperature", "max_tokens"?}
#   -> choices[0].message.content
# =============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse

from magi.llm.http import post_json

logger = logging.getLogger(__name__)

_API_NAME = "Chat Completions API"


class ChatCompletionsAdapter:
    """OpenAI 兼容端点适配器，暴露 async call(system_prompt, user_message) -> str。"""

    def __init__(
        self,
        url: str,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: float = 120.0,
        max_retries: int = 1,
    ):
        """
        Args:
            url: 基础 URL 或完整 /chat/completions 路径。
            api_key: Bearer 密钥。
            model: 模型名称，如 "deepseek-chat"、"gpt-4o"、"grok-3-fast"。
            temperature: 生成温度（评审角色由路由器固定为 0.1）。
            max_tokens: 输出上限；None 时不发送该字段。
            timeout: 单次 HTTP 请求超时（秒）。整体截止时间由引擎控制。
            max_retries: 传输层瞬时错误的重试次数。
        """
        self._endpoint = self._resolve_endpoint(url)
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._max_retries = max_retries

    @property
    def model(self) -> str:
        return self._model

    async def call(self, system_prompt: str, user_message: str) -> str:
        data = await post_json(
            self._endpoint,
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            self._build_request(system_prompt, user_message),
            api_name=_API_NAME,
            model=self._model,
            timeout=self._timeout,
            max_retries=self._max_retries,
        )
        return self._extract_text(data)

    @staticmethod
    def _resolve_endpoint(url: str) -> str:
        parsed = urlparse(url)
        path = parsed.path
        if "/chat/completions" not in path:
            path = path.rstrip("/") + "/chat/completions"
        return urlunparse(parsed._replace(path=path))

    def _build_request(self, system_prompt: str, user_message: str) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        body: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
        }
        if self._max_tokens is not None:
            body["max_tokens"] = self._max_tokens
        return body

    @staticmethod
    def _extract_text(response_data: Dict[str, Any]) -> str:
        """choices[0].message.content；缺失时返回空串（由上层视为生成失败）。"""
        choices = response_data.get("choices") or []
        if choices:
            content = (choices[0].get("message") or {}).get("content")
            if content is not None:
                return content

        logger.warning(
            "%s 响应中未找到文本内容: %s",
            _API_NAME,
            json.dumps(response_data, ensure_ascii=False)[:300],
        )
        return ""

    @classmethod
    def from_endpoint_config(cls, config) -> ChatCompletionsAdapter:
        """从 ModelEndpointConfig 创建。缺少 url 或 api_key 时抛出 ValueError。"""
        if not config.url:
            raise ValueError(
                f"模型 {config.model_name} 未配置 url（Chat Completions 模式必填）。"
            )
        if not config.api_key:
            raise ValueError(
                f"模型 {config.model_name} 未配置 api_key。"
                f"请在 llm_config 中设置，或在 YAML 中以 ${{ENV}} 引用环境变量。"
            )

        return cls(
            url=config.url,
            api_key=config.api_key,
            model=config.model_name,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout or 120.0,
            max_retries=config.max_retries,
        )
