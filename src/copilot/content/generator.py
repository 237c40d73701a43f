"""Content generator -- quota check, LLM call, persist, count.

The order matters for billing fairness: the content_generations quota is
checked before the LLM is called and only incremented after the result
has been stored.
"""

from __future__ import annotations

import structlog

from src.copilot.content.prompts import (
    FALLBACK_CONTENT,
    MAX_TOKENS,
    SYSTEM_PROMPT,
    TEMPERATURE,
    build_prompt,
    build_trending_prompt,
    default_title,
    parse_topics,
)
from src.copilot.content.repository import ContentRepository
from src.copilot.content.schemas import (
    ContentCreate,
    ContentGenerateRequest,
    ContentGenerateResponse,
)
from src.copilot.services.function_log import FunctionLogger
from src.copilot.services.llm import LLMService
from src.copilot.usage.limits import Resource
from src.copilot.usage.service import UsageService

logger = structlog.get_logger(__name__)


class ContentGenerator:
    """Generates creator copy on demand.

    Args:
        llm_service: LiteLLM-backed completion service.
        repository: ContentRepository for persistence.
        usage_service: Quota checks and counters.
        function_logger: Audit log for paid calls.
    """

    def __init__(
        self,
        llm_service: LLMService,
        repository: ContentRepository,
        usage_service: UsageService,
        function_logger: FunctionLogger,
    ) -> None:
        self._llm = llm_service
        self._repository = repository
        self._usage = usage_service
        self._function_logger = function_logger

    async def generate(
        self, user_id: str, request: ContentGenerateRequest
    ) -> ContentGenerateResponse:
        """Generate, store and count one piece of content.

        Raises:
            UsageLimitExceededError: Monthly generations used up.
            LLMError: Provider call failed.
        """
        await self._usage.ensure_within_limit(user_id, Resource.CONTENT_GENERATIONS)

        content_type = request.type.value
        prompt = build_prompt(
            content_type, request.platform, request.niche, request.additional_context
        )
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        async with self._function_logger.track(
            "generate_content",
            user_id,
            {"type": content_type, "platform": request.platform, "niche": request.niche},
        ) as log_out:
            result = await self._llm.completion(
                messages,
                model="writer",
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                metadata={"feature": "content_generation", "content_type": content_type},
            )
            text = (result.get("content") or "").strip() or FALLBACK_CONTENT

            saved = await self._repository.create_content(
                user_id,
                ContentCreate(
                    content_type=content_type,
                    platform=request.platform,
                    niche=request.niche,
                    title=request.title
                    or default_title(content_type, request.platform, request.niche),
                    prompt=prompt,
                    content=text,
                    metadata={
                        "model": result.get("model"),
                        "usage": result.get("usage", {}),
                        "additional_context": request.additional_context,
                    },
                ),
            )
            log_out["content_id"] = saved.id
            log_out["model"] = result.get("model")

        await self._usage.record(user_id, Resource.CONTENT_GENERATIONS)
        logger.info(
            "content.generated",
            user_id=user_id,
            content_id=saved.id,
            content_type=content_type,
        )
        return ContentGenerateResponse(
            content=saved.content,
            content_id=saved.id,
            title=saved.title,
            usage=result.get("usage", {}),
        )

    async def trending_topics(self, niche: str, platform: str | None = None) -> list[str]:
        """Ask the fast model for trending topics. Not metered."""
        result = await self._llm.completion(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_trending_prompt(niche, platform)},
            ],
            model="fast",
            max_tokens=400,
            temperature=0.7,
            metadata={"feature": "trending_topics"},
        )
        return parse_topics(result.get("content") or "")
