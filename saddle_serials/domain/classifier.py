"""Decides which line items need serial tracking."""

from collections.abc import Iterable

SADDLE_TAG = "saddles"


def split_tags(raw: str | Iterable[str] | None) -> list[str]:
    """Normalize Shopify tags to a list of trimmed, non-empty strings.

    GraphQL returns tags as a list; REST webhook payloads send a single
    comma-separated string.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    return [tag.strip() for tag in raw if tag and tag.strip()]


def is_saddle(tags: str | Iterable[str] | None) -> bool:
    """Return True iff one of ``tags`` is exactly ``saddles``, ignoring case.

    ``Saddles-Leather`` or ``western saddles`` do not count.
    """
    return any(tag.lower() == SADDLE_TAG for tag in split_tags(tags))
