"""MAGI 核心 Agent。 / MAGI perspective core agent.

CoreAgent 以固定视角（CASPER / BALTHASAR / MELCHIOR）回答完整问题，
重试时把评审反馈追加到用户消息末尾。
/ Answers the full query from one fixed perspective; on retries the judge's
feedback is appended to the user message.
"""

import logging
from typing import Awaitable, Callable, Optional

from magi.prompts import CORE_RETRY_FEEDBACK
from magi.primitives.models import Perspective

logger = logging.getLogger(__name__)


class CoreAgent:
    """单视角核心。 / Single-perspective core."""

    def __init__(
        self,
        perspective: Perspective,
        llm_caller: Callable[..., Awaitable[str]],
    ):
        self.perspective = perspective
        self._llm_caller = llm_caller

    def build_prompt(self, full_query: str, feedback: Optional[str] = None) -> str:
        if not feedback:
            return full_query
        return full_query + CORE_RETRY_FEEDBACK.format(
            feedback=feedback,
            perspective_name=self.perspective.name,
        )

    async def generate(self, full_query: str, feedback: Optional[str] = None) -> str:
        """生成一次回答。空回答视为调用失败。 / Produce one answer; an empty reply is a failure.

        Raises:
            ValueError: 模型返回空内容。
        """
        text = await self._llm_caller(
            system_prompt=self.perspective.system_prompt,
            user_prompt=self.build_prompt(full_query, feedback),
        )
        if not text or not text.strip():
            raise ValueError(f"No response from {self.perspective.name}")
        return text.strip()
