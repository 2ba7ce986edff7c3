# router.py
# =============================================================================
# LLM 模型路由模块
#
# 职责：
#   - 根据角色（casper / balthasar / melchior / judge / sybil）选择 LLM 适配器
#     （ChatCompletions / Anthropic）
#   - 按角色缓存适配器实例
#   - 支持按调用方固定温度（评审模型固定低温）
#
# 配置优先级（高→低）：
#   1. 代码传入 llm_config 字典（最高优先级）
#   2. 配置文件 llm_config.yaml
#   3. 环境变量（通过 ${VAR} 在 YAML 中引用）
#
# 不提供任何硬编码默认模型。所有角色的模型配置必须通过以上三种方式之一提供，
# 否则在解析时抛出 ConfigurationError。
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

from magi.primitives.errors import MagiError

logger = logging.getLogger(__name__)


# =============================================================================
# 异常
# =============================================================================


class ConfigurationError(MagiError):
    """LLM 配置缺失或不完整时抛出的异常。"""

    code = "CONFIG"


# =============================================================================
# 模型路由器
# =============================================================================


class ModelRouter:
    """模型路由器: 根据角色选择适配器。

    核心能力：
    - 通过 LLMConfigLoader 支持三层优先级配置（代码 > 文件 > 环境变量）
    - 根据 api_mode 创建对应的 LLM 适配器，统一 async call() 接口
    - 适配器按 (角色, 温度覆盖) 缓存，避免重复创建
    """

    def __init__(
        self,
        llm_config: Optional[Dict[str, Any]] = None,
        config_file: Optional[str] = None,
    ) -> None:
        """初始化路由器。

        Args:
            llm_config: 用户自定义模型配置字典（最高优先级）。格式参见
                LLMConfigLoader 文档。
            config_file: LLM 配置文件路径（可选，不传则自动搜索）。
        """
        from magi.llm.config import LLMConfigLoader

        self._config_loader = LLMConfigLoader(
            llm_config=llm_config, config_file=config_file
        )
        self._model_cache: Dict[Tuple[str, Optional[float]], Any] = {}

        # 启动时输出配置摘要（隐藏 API Key）
        for role, info in self._config_loader.summary().items():
            logger.info(
                "模型路由: %s → %s/%s (url=%s, key=%s)",
                role,
                info["platform"],
                info["model"],
                info["url"],
                info["api_key"],
            )

    @property
    def config_loader(self) -> Any:
        """配置加载器（供外部检查配置使用）。"""
        return self._config_loader

    def get_model(self, role: str) -> str:
        """获取角色对应的模型名称。角色配置不存在时抛出 ConfigurationError。"""
        return self._config_loader.resolve(role).model_name

    def get_endpoint_config(self, role: str):
        """获取角色的 ModelEndpointConfig 对象。"""
        return self._config_loader.resolve(role)

    # =========================================================================
    # 适配器管理
    # =========================================================================

    def get_model_backend(
        self, role: str, temperature: Optional[float] = None,
    ) -> Any:
        """获取角色对应的 LLM 适配器实例（带缓存）。

        根据 api_mode 自动选择适配器类型：
        - "chat_completions": ChatCompletionsAdapter（httpx 直连）
        - "anthropic": AnthropicAdapter（httpx 直连）

        所有适配器均暴露统一接口：async call(system_prompt, user_message) -> str

        Args:
            role: 角色名。
            temperature: 覆盖配置中的温度（如评审模型固定低温）。

        Raises:
            ConfigurationError: 角色配置缺失或不完整。
        """
        cache_key = (role, temperature)
        if cache_key in self._model_cache:
            return self._model_cache[cache_key]

        config = self._config_loader.resolve(role)
        if temperature is not None:
            config = replace(config, temperature=temperature)

        adapter = self._create_adapter(config)
        self._model_cache[cache_key] = adapter
        logger.info(
            "LLM 适配器已创建: role=%s, api_mode=%s, model=%s, temperature=%s, url=%s",
            role,
            config.api_mode,
            config.model_name,
            config.temperature,
            config.url or "(default)",
        )
        return adapter

    @staticmethod
    def _create_adapter(config) -> Any:
        """根据 api_mode 创建对应的 LLM 适配器。

        适配器对缺失 url / api_key 抛出的 ValueError 统一转为 ConfigurationError。
        """
        try:
            if config.api_mode == "chat_completions":
                from magi.llm.chat_completions_adapter import (
                    ChatCompletionsAdapter,
                )
                return ChatCompletionsAdapter.from_endpoint_config(config)

            if config.api_mode == "anthropic":
                from magi.llm.anthropic_adapter import AnthropicAdapter
                return AnthropicAdapter.from_endpoint_config(config)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        raise ConfigurationError(
            f"不支持的 api_mode: '{config.api_mode}'。"
            f"仅支持: chat_completions, anthropic。"
        )

    def clear_model_cache(self) -> None:
        """清除所有缓存的适配器。"""
        self._model_cache.clear()
