"""Cache key schema for the in-process resolver caches.

Config cascade key format: {user}:{personality}:{channel}

Where each absent component is replaced by a fixed sentinel:
- user: Discord snowflake (numeric) or "anon"
- personality: UUID (hyphenated hex) or "none"
- channel: Discord snowflake (numeric) or "no-ch"

Sentinels cannot collide with real identifiers, and ":" never appears in
snowflakes or UUIDs, so keys can be split back into their components.
Targeted invalidation matches by segment position, never by substring.
"""

from __future__ import annotations

from typing import NamedTuple


class CascadeKeyParts(NamedTuple):
    """Structural components of a config cascade cache key."""

    user: str
    personality: str
    channel: str


class CacheKeys:
    """Cache key generator following a consistent naming convention."""

    DELIMITER = ":"

    ANON_USER = "anon"
    NO_PERSONALITY = "none"
    NO_CHANNEL = "no-ch"

    # Reserved key for the guest-mode LLM config; contains no delimiter
    FREE_DEFAULT_LLM_CONFIG = "__free_default__"

    @classmethod
    def config_cascade(
        cls,
        user_id: str | None = None,
        personality_id: str | None = None,
        channel_id: str | None = None,
    ) -> str:
        """Key for a resolved config cascade."""
        return cls.DELIMITER.join(
            (
                user_id or cls.ANON_USER,
                personality_id or cls.NO_PERSONALITY,
                channel_id or cls.NO_CHANNEL,
            )
        )

    @classmethod
    def parse_config_cascade(cls, key: str) -> CascadeKeyParts | None:
        """Split a config cascade key into its components.

        Returns None if the key doesn't have exactly three segments.
        """
        parts = key.split(cls.DELIMITER)
        if len(parts) != 3:
            return None
        return CascadeKeyParts(*parts)

    @classmethod
    def llm_config(cls, user_id: str, personality_id: str) -> str:
        """Key for a resolved LLM config."""
        return f"{user_id}{cls.DELIMITER}{personality_id}"

    @classmethod
    def segment(cls, key: str, index: int) -> str | None:
        """Return the delimited segment at ``index``, or None if absent."""
        parts = key.split(cls.DELIMITER)
        if index >= len(parts):
            return None
        return parts[index]
