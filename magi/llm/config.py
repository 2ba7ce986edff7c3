# config.py
# =============================================================================
# LLM 配置加载与合并模块 / LLM config loading & merging module
#
# 职责 / Responsibilities:
#   - 定义模型端点配置（ModelEndpointConfig）与引擎参数（EngineSettings）
#     / Define endpoint config (ModelEndpointConfig) and engine knobs (EngineSettings)
#   - 实现三层优先级配置加载：代码传入 > 配置文件 > 环境变量
#     / Three-tier priority loading: code > config file > env vars
#   - 配置缺失时抛出 ConfigurationError，不提供任何硬编码默认模型
#     / Raise ConfigurationError on missing config; no hardcoded default models
#
# 角色 / Roles:
#   casper / balthasar / melchior: 三个 MAGI 核心 / the three MAGI cores
#   judge:                         评审模型（所有校验共用） / shared validator
#   sybil:                         综合模型 / synthesis model
# =============================================================================

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


# =============================================================================
# 数据结构 / Data Structures
# =============================================================================


@dataclass
class ModelEndpointConfig:
    """单个模型端点的完整配置。
    / Complete config for a single model endpoint.

    对应一个角色（casper / judge / sybil 等）的模型配置。
    各 LLM 适配器通过 from_endpoint_config() 读取本配置创建实例。
    / Maps to one role; adapters instantiate via from_endpoint_config().
    """

    # --- 必填：模型标识 / Required: model identity ---
    model_platform: str  # 平台标识 / Platform: "openai" / "anthropic" / "deepseek" / "xai" etc.
    model_name: str  # 模型名称 / Model name: "gpt-4o" / "deepseek-chat" etc.

    # --- 可选：连接信息 / Optional: connection info ---
    api_key: Optional[str] = None
    url: Optional[str] = None  # 自定义 endpoint URL / Custom endpoint URL

    # --- 可选：API 模式 / Optional: API mode ---
    # "chat_completions": OpenAI 兼容格式（默认） / OpenAI-compatible (default)
    # "anthropic"       : Anthropic Messages API 格式 / Anthropic Messages API
    api_mode: str = "chat_completions"

    # --- 可选：模型行为参数 / Optional: model behavior params ---
    temperature: float = 0.7
    max_tokens: Optional[int] = 1400
    # HTTP 层超时；整体截止时间由 EngineSettings 控制 / HTTP timeout; overall deadline lives in EngineSettings
    timeout: Optional[float] = None
    # 适配器内部的 HTTP 重试；语义重试由 RetryController 负责 / Adapter-level HTTP retries only
    max_retries: int = 1

    # --- 可选：额外参数（透传给适配器） / Optional: extra params ---
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> ModelEndpointConfig:
        """从字典构建配置。 / Build config from dict.

        支持两种格式 / Two formats supported:
        1. 简写格式（仅模型名字符串） / Shorthand: "gpt-4o"
        2. 完整格式（字典） / Full dict: {"model_name": "gpt-4o", "api_key": "...", ...}
        """
        if isinstance(data, str):
            return cls.from_dict({"model_name": data})

        model_name = data.get("model_name") or data.get("model", "")
        model_platform = data.get("model_platform") or _infer_platform(model_name)

        api_mode = data.get("api_mode") or _infer_api_mode(
            model_platform, data.get("url")
        )
        if api_mode not in _VALID_API_MODES:
            raise ValueError(
                f"不支持的 api_mode: '{api_mode}'。"
                f"仅支持: {', '.join(_VALID_API_MODES)}。"
            )

        _known_keys = {
            "model",
            "model_name",
            "model_platform",
            "api_key",
            "url",
            "api_mode",
            "temperature",
            "max_tokens",
            "timeout",
            "max_retries",
        }

        return cls(
            model_platform=model_platform,
            model_name=model_name,
            api_key=data.get("api_key"),
            url=data.get("url") or _DEFAULT_PLATFORM_URLS.get(model_platform),
            api_mode=api_mode,
            temperature=float(data.get("temperature", 0.7)),
            max_tokens=(
                data["max_tokens"] if "max_tokens" in data else 1400
            ),
            timeout=data.get("timeout"),
            max_retries=int(data.get("max_retries", 1)),
            extra={k: v for k, v in data.items() if k not in _known_keys},
        )


@dataclass(frozen=True)
class EngineSettings:
    """引擎编排参数（截止时间、重试上限、输入长度）。
    / Orchestration knobs: deadlines, retry ceiling, input bound.

    来自配置中的 _engine 节；未设置的字段使用默认值。
    / Loaded from the _engine meta section; unset fields keep their defaults.
    """

    core_timeout_ms: int = 30000
    judge_timeout_ms: int = 15000
    synthesis_timeout_ms: int = 60000
    max_retries: int = 2  # 重试次数；总尝试次数 = max_retries + 1 / total attempts = max_retries + 1
    max_query_chars: int = 5000

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> EngineSettings:
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("忽略未知的 _engine 配置项: %s", sorted(unknown))
        values = {k: int(v) for k, v in data.items() if k in known and v is not None}
        settings = cls(**values)
        if settings.max_retries < 0:
            raise ValueError("_engine.max_retries 不能为负数 / must not be negative")
        return settings


_VALID_API_MODES = ("chat_completions", "anthropic")


# =============================================================================
# 平台推断 / Platform Inference
# =============================================================================

# 模型名称 → 平台映射规则（按关键词匹配） / Model name → platform mapping rules
_PLATFORM_INFERENCE_RULES: List[tuple] = [
    (["claude"], "anthropic"),
    (["gpt-", "o1-", "o3-", "o4-", "chatgpt"], "openai"),
    (["deepseek"], "deepseek"),
    (["grok"], "xai"),
]

# 已知平台的默认基础 URL / Default base URLs for known platforms
_DEFAULT_PLATFORM_URLS: Dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com",
    "xai": "https://api.x.ai/v1",
}


def _infer_platform(model_name: str) -> str:
    """根据模型名称推断 model_platform。 / Infer model_platform from model name.

    未能推断时返回 "openai"。 / Falls back to "openai".
    """
    name_lower = model_name.lower()
    for keywords, platform in _PLATFORM_INFERENCE_RULES:
        for kw in keywords:
            if kw in name_lower:
                return platform
    logger.debug(
        "无法从模型名称 '%s' 推断平台，使用默认 'openai'", model_name
    )
    return "openai"


def _infer_api_mode(platform: str, url: Optional[str] = None) -> str:
    """根据 platform 和 url 自动推断 api_mode。 / Auto-infer api_mode from platform & url.

    platform == "anthropic" 且无自定义 URL -> "anthropic"，其余 -> "chat_completions"。
    """
    if (platform or "").lower() == "anthropic" and not url:
        return "anthropic"
    return "chat_completions"


# 已知角色名，仅用于配置缺失时的错误提示 / Known roles, used for friendlier errors only
KNOWN_ROLES = [
    "casper",
    "balthasar",
    "melchior",
    "judge",
    "sybil",
]


# =============================================================================
# 配置加载器 / Config Loader
# =============================================================================


class LLMConfigLoader:
    """LLM 配置加载器: 实现三层优先级配置合并。
    / LLM config loader: three-tier priority merging.

    优先级（高→低） / Priority (high→low):
    1. 代码传入（llm_config 字典参数） / Code-level config dict
    2. 配置文件（YAML） / Config file (YAML)
    3. 环境变量（通过 ${VAR} 在 YAML 中引用） / Env vars (${VAR} in YAML)

    llm_config 字典格式 / Dict format:
    {
        "_default": {"max_tokens": 1400},
        "casper": {"model_name": "deepseek-chat", "api_key": "...", "temperature": 0.2},
        "judge": "gpt-4o-mini",  # 简写格式 / Shorthand
        "_engine": {"core_timeout_ms": 30000, "max_retries": 2},
    }
    """

    _CONFIG_SEARCH_PATHS = [
        "llm_config.yaml",
        "llm_config.yml",
        "config/llm_config.yaml",
        "config/llm_config.yml",
    ]

    # 以下划线开头的键是元配置，不是角色名 / Underscore-prefixed keys are meta-config
    _META_KEYS = {"_default", "_engine"}

    def __init__(
        self,
        llm_config: Optional[Dict[str, Any]] = None,
        config_file: Optional[str] = None,
    ):
        """初始化配置加载器。 / Initialize config loader.

        Args:
            llm_config: 代码传入的配置字典（最高优先级）。 / Code-level config dict (highest priority).
            config_file: 配置文件路径（不传则自动搜索）。 / Config file path (auto-search if omitted).
        """
        self._code_config = llm_config or {}
        self._file_config: Dict[str, Any] = {}
        self._load_config_file(config_file)

    def _load_config_file(self, config_file: Optional[str]) -> None:
        """加载配置文件（YAML）。 / Load config file (YAML)."""
        if config_file:
            path = Path(config_file)
            if path.exists():
                self._file_config = self._read_yaml(path)
                logger.info("LLM 配置文件已加载: %s", path)
            else:
                logger.warning("指定的 LLM 配置文件不存在: %s", path)
            return

        for search_path in self._CONFIG_SEARCH_PATHS:
            path = Path(search_path)
            if path.exists():
                self._file_config = self._read_yaml(path)
                logger.info("自动发现 LLM 配置文件: %s", path)
                return

        logger.debug("未发现 LLM 配置文件，将依赖代码配置")

    @staticmethod
    def _read_yaml(path: Path) -> Dict[str, Any]:
        """读取 YAML 文件并展开环境变量引用。 / Read YAML and expand env var refs."""
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return _expand_env_vars(raw)

    def resolve(self, role: str) -> ModelEndpointConfig:
        """解析指定角色的完整模型配置。 / Resolve full model config for a role.

        合并策略（后者覆盖前者） / Merge order (later wins):
        文件 _default → 文件角色 → 代码 _default → 代码角色
        / file _default → file role → code _default → code role

        Raises:
            ConfigurationError: 角色的模型配置缺失。 / Role config missing.
        """
        from magi.llm.router import ConfigurationError

        merged: Dict[str, Any] = {}
        for cfg in (self._file_config, self._code_config):
            default = cfg.get("_default", {})
            if isinstance(default, dict):
                merged.update({k: v for k, v in default.items() if v is not None})
            role_cfg = cfg.get(role, {})
            if isinstance(role_cfg, str):
                merged["model_name"] = role_cfg
                merged["model_platform"] = _infer_platform(role_cfg)
            elif isinstance(role_cfg, dict):
                merged.update({k: v for k, v in role_cfg.items() if v is not None})

        model_name = merged.get("model_name") or merged.get("model", "")
        if not model_name:
            hint = ""
            if role in KNOWN_ROLES:
                hint = (
                    f"\n提示：'{role}' 是 MAGI 引擎的已知角色，"
                    f"请在 llm_config 参数或 llm_config.yaml 中为其指定模型。"
                )
            raise ConfigurationError(
                f"角色 '{role}' 的 LLM 模型配置缺失：未找到 model_name。"
                f"已搜索：代码传入 llm_config['{role}']、"
                f"配置文件 '{role}' 节、_default 全局配置。{hint}"
            )
        merged["model_name"] = model_name

        return ModelEndpointConfig.from_dict(merged)

    def has_role(self, role: str) -> bool:
        """检查角色是否有配置（直接或通过 _default 继承）。 / Check if role has config."""
        if role in self._code_config or role in self._file_config:
            return True
        for cfg in (self._code_config, self._file_config):
            default = cfg.get("_default", {})
            if isinstance(default, dict) and (
                default.get("model_name") or default.get("model")
            ):
                return True
        return False

    def engine_settings(self) -> EngineSettings:
        """合并 _engine 节（代码优先于文件）。 / Merge the _engine section (code over file)."""
        merged: Dict[str, Any] = {}
        for cfg in (self._file_config, self._code_config):
            section = cfg.get("_engine", {})
            if isinstance(section, dict):
                merged.update(section)
        return EngineSettings.from_dict(merged)

    def all_configured_roles(self) -> List[str]:
        """返回所有已配置的角色名（不含元配置键）。 / List configured roles (no meta keys)."""
        roles = set()
        for cfg in (self._code_config, self._file_config):
            roles.update(k for k in cfg.keys() if not k.startswith("_"))
        return sorted(roles)

    def summary(self) -> Dict[str, Dict[str, str]]:
        """输出配置摘要（隐藏 API Key）。 / Config summary with API keys masked."""
        result = {}
        for role in self.all_configured_roles():
            try:
                cfg = self.resolve(role)
            except Exception:
                # 摘要场景下跳过无法解析的角色 / skip unresolvable roles in summary
                continue
            result[role] = {
                "platform": cfg.model_platform,
                "model": cfg.model_name,
                "url": cfg.url or "(auto)",
                "api_key": _mask_key(cfg.api_key),
                "temperature": str(cfg.temperature),
            }
        return result


# =============================================================================
# 工具函数 / Utility Functions
# =============================================================================


def _expand_env_vars(obj: Any) -> Any:
    """递归展开字典/列表中的 ${ENV_VAR} 引用。 / Recursively expand ${ENV_VAR} refs.

    支持格式 / Supported formats:
    - ${VAR_NAME}          → os.environ["VAR_NAME"]
    - ${VAR_NAME:-default} → os.environ.get("VAR_NAME", "default")
    """
    if isinstance(obj, str):
        import re

        def _replace(match):
            var_expr = match.group(1)
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return os.environ.get(var_name.strip(), default.strip())
            return os.environ.get(var_expr.strip(), match.group(0))

        return re.sub(r"\$\{([^}]+)\}", _replace, obj)

    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _mask_key(key: Optional[str]) -> str:
    """遮蔽 API Key，仅显示前 8 位和后 4 位。 / Mask API key."""
    if not key:
        return "(env)"
    if len(key) <= 12:
        return key[:3] + "***"
    return key[:8] + "..." + key[-4:]
