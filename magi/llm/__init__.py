# llm/__init__.py
# 模型路由、LLM 配置管理与适配器 / Model routing, LLM config & adapters

from magi.llm.anthropic_adapter import AnthropicAdapter
from magi.llm.chat_completions_adapter import ChatCompletionsAdapter
from magi.llm.config import (
    EngineSettings,
    LLMConfigLoader,
    ModelEndpointConfig,
)
from magi.llm.router import (
    ConfigurationError,
    ModelRouter,
)

__all__ = [
    "AnthropicAdapter",
    "ChatCompletionsAdapter",
    "ConfigurationError",
    "EngineSettings",
    "LLMConfigLoader",
    "ModelEndpointConfig",
    "ModelRouter",
]
