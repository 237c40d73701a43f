"""LLM provider abstraction via LiteLLM Router.

Provides a user-aware LLM service with:
- Claude Sonnet 4 as the primary writing model
- GPT-4o as fallback when Claude is unavailable
- Prompt injection detection and sanitization of user-supplied text
- User metadata in every LLM call for cost tracking
"""

from __future__ import annotations

import re

import structlog
from litellm import Router

from src.copilot.config import get_settings
from src.copilot.core.errors import ProviderError
from src.copilot.core.identity import get_current_user_context
from src.copilot.core.monitoring import track_llm_call

logger = structlog.get_logger(__name__)

# ── Prompt Injection Detection ────────────────────────────────────────────────

_INJECTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "instruction_override",
        re.compile(
            r"ignore\s+(all\s+)?(the\s+)?previous\s+instructions|"
            r"disregard\s+(all\s+)?(your\s+)?instructions|"
            r"forget\s+(all\s+)?(your\s+)?instructions|"
            r"override\s+(all\s+)?(your\s+)?instructions",
            re.IGNORECASE,
        ),
    ),
    (
        "system_prompt_exfiltration",
        re.compile(
            r"(reveal|show|display|output|print|repeat)\s+(your\s+)?(system\s+prompt|instructions)|"
            r"repeat\s+everything\s+above|"
            r"what\s+are\s+your\s+instructions",
            re.IGNORECASE,
        ),
    ),
    (
        "role_hijacking",
        re.compile(
            r"you\s+are\s+now\s+(a|an|the)\s+|"
            r"from\s+now\s+on\s+you\s+are|"
            r"assume\s+the\s+role\s+of",
            re.IGNORECASE,
        ),
    ),
    (
        "control_characters",
        re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]{3,}"),
    ),
]


def detect_prompt_injection(text: str) -> tuple[bool, str | None]:
    """Check text for common prompt injection patterns.

    Returns:
        Tuple of (is_injection, pattern_name) where pattern_name identifies
        which pattern matched, or None if no injection detected.
    """
    for pattern_name, pattern in _INJECTION_PATTERNS:
        if pattern.search(text):
            logger.warning(
                "prompt_injection_detected",
                pattern=pattern_name,
                text_preview=text[:100],
            )
            return True, pattern_name
    return False, None


def sanitize_messages(messages: list[dict]) -> list[dict]:
    """Strip injection patterns from non-system messages.

    System messages are ours and are passed through untouched. User
    messages carry creator-supplied context and have matching fragments
    replaced with "[removed]".
    """
    sanitized = []
    for msg in messages:
        if msg.get("role") == "system":
            sanitized.append(msg)
            continue

        content = msg.get("content", "")
        if not content:
            sanitized.append(msg)
            continue

        is_injection, pattern_name = detect_prompt_injection(content)
        if not is_injection:
            sanitized.append(msg)
            continue

        cleaned = content
        for _, pattern in _INJECTION_PATTERNS:
            cleaned = pattern.sub("[removed]", cleaned)
        logger.warning(
            "prompt_injection_sanitized",
            role=msg.get("role"),
            pattern=pattern_name,
            original_length=len(content),
            cleaned_length=len(cleaned),
        )
        sanitized.append({**msg, "content": cleaned})

    return sanitized


# ── LLM Service ──────────────────────────────────────────────────────────────


class LLMError(ProviderError):
    provider = "llm"


class LLMService:
    """LLM provider abstraction with LiteLLM Router.

    Two model groups: "writer" for creator copy and "fast" for short list
    outputs like trending topics. Each group has an Anthropic primary and an
    OpenAI fallback when both keys are configured.
    """

    def __init__(self) -> None:
        settings = get_settings()

        model_list = []

        if settings.ANTHROPIC_API_KEY:
            model_list.append({
                "model_name": "writer",
                "litellm_params": {
                    "model": "anthropic/claude-sonnet-4-20250514",
                    "api_key": settings.ANTHROPIC_API_KEY,
                },
            })
            model_list.append({
                "model_name": "fast",
                "litellm_params": {
                    "model": "anthropic/claude-3-5-haiku-20241022",
                    "api_key": settings.ANTHROPIC_API_KEY,
                },
            })

        if settings.OPENAI_API_KEY:
            model_list.append({
                "model_name": "writer",
                "litellm_params": {
                    "model": "openai/gpt-4o",
                    "api_key": settings.OPENAI_API_KEY,
                },
            })
            model_list.append({
                "model_name": "fast",
                "litellm_params": {
                    "model": "openai/gpt-4o-mini",
                    "api_key": settings.OPENAI_API_KEY,
                },
            })

        if not model_list:
            logger.warning("No LLM API keys configured -- LLM service will be unavailable")
            self.router = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )

    async def completion(
        self,
        messages: list[dict],
        model: str = "writer",
        max_tokens: int = 1000,
        temperature: float = 0.8,
        metadata: dict | None = None,
    ) -> dict:
        """Execute a completion call through the LiteLLM Router.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model group name ("writer" or "fast").
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0-2).
            metadata: Additional metadata to include in the call.

        Returns:
            Dict with content, model, usage and user_id.

        Raises:
            LLMError: If no keys are configured or every deployment failed.
        """
        if not self.router:
            raise LLMError("No LLM API keys configured")

        try:
            user = get_current_user_context()
            user_metadata = {"user_id": user.user_id}
        except RuntimeError:
            user_metadata = {}

        call_metadata = {**user_metadata, **(metadata or {})}
        safe_messages = sanitize_messages(messages)

        async with track_llm_call(model) as tracker:
            try:
                response = await self.router.acompletion(
                    model=model,
                    messages=safe_messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    metadata=call_metadata,
                )
            except Exception as exc:
                logger.error("llm.completion_failed", model=model, error=str(exc))
                raise LLMError(f"LLM request failed: {exc}") from exc

            usage = {}
            if getattr(response, "usage", None):
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }
                tracker["prompt_tokens"] = usage["prompt_tokens"]
                tracker["completion_tokens"] = usage["completion_tokens"]

        return {
            "content": response.choices[0].message.content or "",
            "model": response.model,
            "usage": usage,
            "user_id": user_metadata.get("user_id", ""),
        }


# ── Singleton ─────────────────────────────────────────────────────────────────

_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get or create the LLM service singleton."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
