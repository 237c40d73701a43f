"""Prompt templates for creator content generation."""

from __future__ import annotations

SYSTEM_PROMPT = (
    "You are CreatorCopilot, an AI assistant specialized in helping content creators "
    "generate high-quality, engaging content across social media platforms."
)

FALLBACK_CONTENT = "Unable to generate content"

MAX_TOKENS = 1000
TEMPERATURE = 0.8

_TEMPLATES: dict[str, str] = {
    "script": (
        "Create an engaging {platform} script for a {niche} content creator. "
        "Make it conversational, valuable, and hook viewers from the start. "
        "Include a strong opening, valuable content, and clear call-to-action. {context}"
    ),
    "caption": (
        "Write a compelling {platform} caption for {niche} content. "
        "Include relevant emojis, engaging hooks, and encourage interaction. {context}"
    ),
    "hashtags": (
        "Generate 15-20 trending hashtags for {niche} content on {platform}. "
        "Mix popular and niche-specific tags for maximum reach. {context}"
    ),
    "ideas": (
        "Suggest 10 creative content ideas for a {niche} creator on {platform}. "
        "Make them current, engaging, and aligned with trending topics. {context}"
    ),
}

TRENDING_PROMPT = (
    "List the 10 most relevant trending topics right now for {niche} content creators{platform_hint}. "
    "Return one topic per line with no numbering or extra commentary."
)


def build_prompt(
    content_type: str,
    platform: str,
    niche: str,
    additional_context: str | None = None,
) -> str:
    """Render the user prompt; unknown types use the ideas template."""
    template = _TEMPLATES.get(content_type, _TEMPLATES["ideas"])
    context = f"Additional context: {additional_context}" if additional_context else ""
    return template.format(platform=platform, niche=niche, context=context).strip()


def default_title(content_type: str, platform: str, niche: str) -> str:
    return f"{content_type.capitalize()} for {niche} on {platform}"


def build_trending_prompt(niche: str, platform: str | None = None) -> str:
    platform_hint = f" on {platform}" if platform else ""
    return TRENDING_PROMPT.format(niche=niche, platform_hint=platform_hint)


def parse_topics(text: str, limit: int = 10) -> list[str]:
    """Split an LLM list answer into clean topic strings."""
    topics = []
    for line in text.splitlines():
        cleaned = line.strip().lstrip("-*•").strip()
        # "1." / "2)" numbering
        head, _, rest = cleaned.partition(" ")
        if rest and head.rstrip(".)").isdigit():
            cleaned = rest.strip()
        if cleaned:
            topics.append(cleaned)
        if len(topics) >= limit:
            break
    return topics
