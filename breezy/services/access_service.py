"""Access service — tier → content access level → content variant.

All functions are pure and synchronous; pages call them with a tier they
already hold (no Stripe or database access here).

Access levels:
    free / None         -> 'preview'
    starter             -> 'starter'
    pro / enterprise    -> 'full'
"""

from dataclasses import dataclass
from typing import Optional

PREVIEW = "preview"
STARTER = "starter"
FULL = "full"
ACCESS_LEVELS = (PREVIEW, STARTER, FULL)

DEFAULT_PREVIEW_LENGTH = 500
TRUNCATION_MARKER = "..."
DEEP_DIVE_HEADING = "\n\n---\n\n## Deep Dive\n\n"


@dataclass(frozen=True)
class ContentVariants:
    """The four optional renditions a piece of gated content may carry."""

    body: Optional[str] = None
    preview: Optional[str] = None
    starter: Optional[str] = None
    deep_dive: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        """Build from a content row/dict using the stored column names."""
        return cls(
            body=row.get("content"),
            preview=row.get("free_preview"),
            starter=row.get("starter_content"),
            deep_dive=row.get("pro_content"),
        )


@dataclass(frozen=True)
class TieredContent:
    content: str
    access_level: str
    has_deep_dive: bool


def resolve_access_level(tier) -> str:
    if not tier or tier == "free":
        return PREVIEW
    if tier == "starter":
        return STARTER
    # pro and enterprise get full access
    return FULL


def has_starter_access(tier) -> bool:
    return resolve_access_level(tier) in (STARTER, FULL)


def has_full_access(tier) -> bool:
    return resolve_access_level(tier) == FULL


def resolve_content(level, content, preview_length=DEFAULT_PREVIEW_LENGTH) -> TieredContent:
    """Pick the content variant a caller at ``level`` may render.

    Missing variants degrade to the body (or a truncated body for previews);
    this never raises.
    """
    if isinstance(content, dict):
        content = ContentVariants.from_row(content)
    body = content.body or ""
    has_deep_dive = bool(content.deep_dive)

    if level == STARTER:
        return TieredContent(
            content=content.starter or body,
            access_level=STARTER,
            has_deep_dive=has_deep_dive,
        )

    if level == FULL:
        full = body
        if content.deep_dive:
            full = f"{body}{DEEP_DIVE_HEADING}{content.deep_dive}"
        return TieredContent(
            content=full,
            access_level=FULL,
            has_deep_dive=has_deep_dive,
        )

    # Anything else is treated as preview.
    return TieredContent(
        content=content.preview or body[:preview_length] + TRUNCATION_MARKER,
        access_level=PREVIEW,
        has_deep_dive=False,
    )


def get_tiered_content(tier, content, preview_length=DEFAULT_PREVIEW_LENGTH) -> TieredContent:
    """Convenience wrapper: tier → access level → content."""
    return resolve_content(resolve_access_level(tier), content, preview_length)
