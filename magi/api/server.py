# server.py
# =============================================================================
# HTTP 入口: FastAPI 应用。
#
#   POST /api/analyze  {query, location?, envContext?} → AnalysisResult 字典
#   GET  /health       服务状态与已配置角色
#
# 启动：python -m magi.api.server 或 uvicorn magi.api.server:app
# 配置文件路径可通过环境变量 MAGI_LLM_CONFIG 指定（否则自动搜索）。
# =============================================================================

"""HTTP 入口: FastAPI 应用。"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from magi import __version__
from magi.api.analyze import analyze
from magi.llm.config import KNOWN_ROLES, LLMConfigLoader

logger = logging.getLogger(__name__)

QUERY_REQUIRED = "Query is required and must be a non-empty string."
ENV_CONTEXT_INVALID = "envContext is malformed."
INTERNAL_ERROR = "Internal server error during analysis."


class AnalyzeRequest(BaseModel):
    # query / location 不在模型层强制类型，以便返回与前端约定一致的 400 信息
    query: Any = None
    location: Any = None
    envContext: Optional[Dict[str, Any]] = Field(default=None)


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def create_app(
    llm_config: Optional[Dict[str, Any]] = None,
    config_file: Optional[str] = None,
) -> FastAPI:
    """创建 FastAPI 应用。配置在每次请求时由 analyze() 重新解析。"""
    app = FastAPI(
        title="MAGI API",
        description="Multi-perspective advisory analysis engine",
        version=__version__,
    )

    @app.get("/health")
    async def health():
        loader = LLMConfigLoader(llm_config=llm_config, config_file=config_file)
        return {
            "status": "ok",
            "roles": {role: loader.has_role(role) for role in KNOWN_ROLES},
        }

    @app.post("/api/analyze")
    async def analyze_endpoint(body: AnalyzeRequest):
        query = body.query
        if not isinstance(query, str) or not query.strip():
            return _error(400, QUERY_REQUIRED)
        query = query.strip()

        try:
            settings = LLMConfigLoader(
                llm_config=llm_config, config_file=config_file,
            ).engine_settings()
        except Exception as exc:
            logger.exception("引擎配置无效")
            return _error(500, INTERNAL_ERROR, details=str(exc))
        if len(query) > settings.max_query_chars:
            return _error(400, f"Query must be under {settings.max_query_chars} characters.")

        location = body.location.strip() if isinstance(body.location, str) else None

        try:
            result = await analyze(
                query,
                location=location or None,
                env_context=body.envContext,
                llm_config=llm_config,
                config_file=config_file,
            )
        except ValueError as exc:
            if "env_context" in str(exc):
                return _error(400, ENV_CONTEXT_INVALID, details=str(exc))
            logger.error(f"分析失败: {exc}")
            return _error(500, INTERNAL_ERROR, details=str(exc))
        except Exception as exc:
            logger.exception("分析失败")
            return _error(500, INTERNAL_ERROR, details=str(exc))

        return result.to_dict()

    return app


app = create_app(config_file=os.environ.get("MAGI_LLM_CONFIG"))


def main():
    import uvicorn
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    host = os.environ.get("MAGI_HOST", "127.0.0.1")
    port = int(os.environ.get("MAGI_PORT", "8000"))
    uvicorn.run("magi.api.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
