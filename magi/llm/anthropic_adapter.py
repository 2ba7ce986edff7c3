# anthropic_adapter.py
# =============================================================================
# Anthropic Messages API 适配器，默认承载 Sybil 综合角色。
#
#   POST https://api.anthropic.com/v1/messages
#   headers: x-api-key, anthropic-version: 2023-06-01
#   {"model", "max_tokens", "system"?, "messages": [user], "temperature"}
#   -> 首个 type=text 内容块的 text
# =============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse, urlunparse

from magi.llm.http import post_json

logger = logging.getLogger(__name__)

_API_NAME = "Anthropic Messages API"
_DEFAULT_ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
_ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter:
    """Anthropic Messages API 适配器。"""

    def __init__(
        self,
        api_key: str,
        model: str,
        url: Optional[str] = None,
        temperature: float = 0.4,
        max_tokens: int = 2000,
        timeout: float = 120.0,
        max_retries: int = 1,
    ):
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
                "x-api-key": self._api_key,
                "anthropic-version": _ANTHROPIC_VERSION,
            },
            self._build_request(system_prompt, user_message),
            api_name=_API_NAME,
            model=self._model,
            timeout=self._timeout,
            max_retries=self._max_retries,
        )
        return self._extract_text(data)

    @staticmethod
    def _resolve_endpoint(url: Optional[str]) -> str:
        if not url:
            return _DEFAULT_ANTHROPIC_URL
        parsed = urlparse(url)
        path = parsed.path
        if "/messages" not in path:
            path = path.rstrip("/") + "/messages"
        return urlunparse(parsed._replace(path=path))

    def _build_request(self, system_prompt: str, user_message: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": user_message}],
            "temperature": self._temperature,
        }
        if system_prompt:
            body["system"] = system_prompt
        return body

    @staticmethod
    def _extract_text(response_data: Dict[str, Any]) -> str:
        content = response_data.get("content", [])
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text":
                    return block.get("text", "")

        logger.warning(
            "%s 响应中未找到文本内容: %s",
            _API_NAME,
            json.dumps(response_data, ensure_ascii=False)[:300],
        )
        return ""

    @classmethod
    def from_endpoint_config(cls, config) -> AnthropicAdapter:
        """从 ModelEndpointConfig 创建。Anthropic 模式必须显式配置 api_key。"""
        if not config.api_key:
            raise ValueError(
                f"模型 {config.model_name} 未配置 api_key。"
                f"请在 llm_config 中设置，或在 YAML 中以 ${{ANTHROPIC_API_KEY}} 引用。"
            )

        return cls(
            api_key=config.api_key,
            model=config.model_name,
            url=config.url,
            temperature=config.temperature,
            max_tokens=config.max_tokens or 2000,
            timeout=config.timeout or 120.0,
            max_retries=config.max_retries,
        )
