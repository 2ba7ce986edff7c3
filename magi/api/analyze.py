# analyze.py
# =============================================================================
# 公共 API: MAGI 分析入口。
#
# 提供 analyze() 一键分析函数：加载模型配置、为五个角色创建 LLM caller，
# 内部使用 AnalysisRuntime 编排 生成 → 评审 → 重试 → 综合。
# =============================================================================

"""公共 API: MAGI 分析入口。"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from magi.agents.judge import JUDGE_TEMPERATURE
from magi.engine.runtime import AnalysisRuntime, ProgressCallback
from magi.primitives.models import AnalysisResult, EnvironmentalContext, Perspective

logger = logging.getLogger(__name__)

JUDGE_ROLE = "judge"
SYBIL_ROLE = "sybil"


def _make_llm_caller(router, role: str, temperature: Optional[float] = None):
    """创建指定角色的 LLM 调用函数。

    返回 async def(system_prompt, user_prompt) -> str 签名的协程函数，
    供 CoreAgent / JudgeAgent / SybilAgent 使用。

    所有 adapter 均暴露统一接口 async call(system_prompt, user_message) -> str，
    因此只需单一代码路径。
    """

    async def caller(*, system_prompt: str = "", user_prompt: str = "") -> str:
        adapter = router.get_model_backend(role, temperature=temperature)
        logger.debug(f"[{role}] LLM 调用")
        return await adapter.call(system_prompt, user_prompt)

    return caller


async def analyze(
    query: str,
    location: Optional[str] = None,
    env_context: Optional[Union[Dict[str, Any], EnvironmentalContext]] = None,
    llm_config: Optional[Dict[str, Any]] = None,
    config_file: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    run_id: Optional[str] = None,
) -> AnalysisResult:
    """一键分析。

    参数：
        query: 用户问题（去除空白后不能为空）。
        location: 可选的位置描述，注入到问题前缀。
        env_context: 可选环境上下文。可以是 EnvironmentalContext，
            也可以是前端 camelCase 字典（fires / airQuality / webcams /
            acled / gdelt，各项独立可选）。
        llm_config: LLM 模型配置（最高优先级）。支持两种格式：
            - 简写: {"casper": "deepseek-chat", "judge": "gpt-4o-mini"}
            - 完整: {"sybil": {"model_platform": "anthropic",
                               "model_name": "claude-sonnet-4-20250514",
                               "api_key": "sk-ant-xxx"}}
            另支持 _default（公共字段）与 _engine（截止时间、重试上限）。
        config_file: LLM 配置文件路径（可选，不传则自动搜索 llm_config.yaml）。
        on_progress: 进度回调函数（可选），支持同步和异步函数，
            在每个关键节点接收 AnalysisEvent。
        run_id: 可选的外部指定 run_id。

    返回：
        AnalysisResult。模型侧失败不会抛出，而是体现在 errors 中。

    Raises:
        ValueError: query 为空，或 env_context 无法解析。
        ConfigurationError: 任一角色缺少模型配置。
    """
    if not isinstance(query, str) or not query.strip():
        raise ValueError("query must be a non-empty string")

    if isinstance(env_context, dict):
        try:
            env_context = EnvironmentalContext.from_dict(env_context)
        except (TypeError, ValueError) as e:
            raise ValueError(f"malformed env_context: {e}") from e

    # 1. 创建 LLM 路由器
    from magi.llm.router import ModelRouter

    router = ModelRouter(llm_config=llm_config, config_file=config_file)
    settings = router.config_loader.engine_settings()

    # 2. 提前解析全部角色，配置问题在任何模型调用之前暴露
    for perspective in Perspective:
        router.get_model_backend(perspective.role)
    router.get_model_backend(JUDGE_ROLE, temperature=JUDGE_TEMPERATURE)
    router.get_model_backend(SYBIL_ROLE)

    # 3. 创建 LLM callers（每个核心独立端点，评审固定低温）
    runtime = AnalysisRuntime(
        core_callers={p: _make_llm_caller(router, p.role) for p in Perspective},
        judge_caller=_make_llm_caller(router, JUDGE_ROLE, temperature=JUDGE_TEMPERATURE),
        sybil_caller=_make_llm_caller(router, SYBIL_ROLE),
        settings=settings,
        on_progress=on_progress,
    )

    return await runtime.run(query, location=location, env_context=env_context, run_id=run_id)
