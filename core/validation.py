"""
Input Validation and the Emoji Palette.

Caller-side validation for the interaction endpoints. Everything here runs
before the interaction writer is invoked, so a rejected request never produces
a Reaction, Comment or FeedItem.

Key Components:
- `EMOJI_PALETTE` / `EMOJI_NAMES`: The fixed set of reactions offered by the
  picker, with the search words used to filter it.
- `search_emojis`: Picker filtering by case-insensitive substring match.
- `InputValidator`: Static validators for comment text, emoji, record ids and
  pagination parameters. Each raises `ValidationError` on failure.
"""

import re
from typing import Any, Dict, List

from core.logging_config import get_logger
from core.exceptions import ValidationError

logger = get_logger(__name__)

EMOJI_NAMES: Dict[str, str] = {
    "❤️": "love heart",
    "\U0001F602": "laugh",
    "\U0001F60D": "love eyes",
    "\U0001F525": "fire hot",
    "\U0001F44D": "thumbs up good",
    "\U0001F622": "sad cry",
    "\U0001F621": "angry mad",
    "\U0001F914": "thinking hmm",
    "\U0001F44F": "clap applause",
    "\U0001F389": "party celebrate",
    "✨": "sparkle shine",
    "\U0001F4AF": "hundred perfect",
}

EMOJI_PALETTE: List[str] = list(EMOJI_NAMES)

MAX_COMMENT_LENGTH = 1000
MAX_PER_PAGE = 30


def search_emojis(query: str = "") -> List[str]:
    """Filter the palette by name, keeping palette order"""
    needle = (query or "").strip().lower()
    return [emoji for emoji in EMOJI_PALETTE if needle in EMOJI_NAMES[emoji]]


class InputValidator:
    """Validation for interaction and gallery input"""

    RECORD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

    @staticmethod
    def validate_comment_text(text: Any) -> str:
        """Reject empty, whitespace-only or oversized comments; returns the text unchanged"""
        if not isinstance(text, str):
            raise ValidationError("text", text, "Must be a string")

        if not text.strip():
            raise ValidationError("text", text, "Comment cannot be empty")

        if len(text) > MAX_COMMENT_LENGTH:
            raise ValidationError(
                "text",
                text[:100],
                f"Must be no more than {MAX_COMMENT_LENGTH} characters",
            )

        return text

    @staticmethod
    def validate_emoji(emoji: Any) -> str:
        """Accept only emoji from the palette"""
        if emoji not in EMOJI_NAMES:
            logger.warning(f"Rejected emoji outside palette: {emoji!r}")
            raise ValidationError("emoji", emoji, "Emoji is not in the palette")
        return emoji

    @staticmethod
    def validate_record_id(value: Any, field: str = "id") -> str:
        """Validate image, reaction, comment and user identifiers"""
        if not isinstance(value, str) or not InputValidator.RECORD_ID_PATTERN.match(
            value
        ):
            raise ValidationError(
                field,
                value,
                "Must be 1-64 characters of letters, numbers, hyphens and underscores",
            )
        return value

    @staticmethod
    def validate_page(page: int, per_page: int = 12) -> None:
        """Validate page-number pagination parameters"""
        if page < 1:
            raise ValidationError("page", page, "Must be at least 1")
        if not 1 <= per_page <= MAX_PER_PAGE:
            raise ValidationError(
                "per_page", per_page, f"Must be between 1 and {MAX_PER_PAGE}"
            )
