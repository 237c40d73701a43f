"""Weekly check-in scripts, one per niche, for the weekly video message."""

from __future__ import annotations

WEEKLY_SCRIPTS: dict[str, str] = {
    "fitness": (
        "Hey {name}! It's your weekly motivation check-in. This week in fitness, we're seeing "
        "huge trends in functional movement and mobility work. Don't forget - consistency beats "
        "perfection every time. Keep pushing forward!"
    ),
    "business": (
        "Hi {name}! Time for your weekly business insights. The entrepreneurial landscape is "
        "evolving fast this week. Focus on building authentic connections and solving real "
        "problems. Your audience needs your unique perspective!"
    ),
    "lifestyle": (
        "Hey there {name}! Your weekly lifestyle inspiration is here. This week is all about "
        "finding balance and creating content that truly resonates. Remember, authenticity is "
        "your superpower in the lifestyle space!"
    ),
    "technology": (
        "Hi {name}! Your weekly tech update is here. The tech world is moving fast this week "
        "with new innovations. Stay curious and keep sharing your unique perspective on "
        "technology trends!"
    ),
    "food": (
        "Hey {name}! Time for your weekly culinary inspiration. Food content is all about "
        "storytelling and connection. Keep sharing those delicious moments and recipes that "
        "bring people together!"
    ),
    "travel": (
        "Hi there {name}! Your weekly travel motivation is here. Even if you're not traveling "
        "this week, keep inspiring others with your adventures and travel tips. The world "
        "needs your wanderlust!"
    ),
}

DEFAULT_WEEKLY_SCRIPT = (
    "Hi {name}! Hope you're having an amazing week creating content. Keep focusing on "
    "providing value to your audience and staying consistent with your posting schedule. "
    "You've got this!"
)


def weekly_script(niche: str | None, name: str | None) -> str:
    template = WEEKLY_SCRIPTS.get((niche or "").strip().lower(), DEFAULT_WEEKLY_SCRIPT)
    return template.format(name=name or "there")
