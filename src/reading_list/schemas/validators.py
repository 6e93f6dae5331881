"""
Shared validation functions for Pydantic schemas.

Used by the bookmark input schemas and by the mutation coordinator, which
validates tag arguments outside of a schema.
"""
from reading_list.core.config import get_settings
from reading_list.services.utils import is_valid_url


def validate_url(url: str) -> str:
    """
    Validate a bookmark URL.

    Args:
        url: The URL to validate.

    Returns:
        The URL with surrounding whitespace removed.

    Raises:
        ValueError: If the URL is empty or is not an http(s) URL with a host.
    """
    stripped = url.strip()
    if not stripped:
        raise ValueError("Please enter a URL")
    if not is_valid_url(stripped):
        raise ValueError("Please enter a valid URL (must start with http:// or https://)")
    return stripped


def validate_tag(tag: str) -> str:
    """
    Validate a single tag.

    Tags are compared case-sensitively, so no case normalization happens here.

    Raises:
        ValueError: If tag is empty after trimming or too long.
    """
    trimmed = tag.strip()
    if not trimmed:
        raise ValueError("Tag name cannot be empty")
    max_len = get_settings().max_tag_length
    if len(trimmed) > max_len:
        raise ValueError(f"Tag exceeds maximum length of {max_len:,} characters")
    return trimmed


def validate_tags(tags: list[str]) -> list[str]:
    """Validate tags and drop exact duplicates, keeping the first occurrence."""
    seen: list[str] = []
    for tag in tags:
        valid = validate_tag(tag)
        if valid not in seen:
            seen.append(valid)
    return seen


def validate_title(title: str | None) -> str | None:
    """Validate that a title is non-blank and within the configured length."""
    if title is None:
        return None
    stripped = title.strip()
    if not stripped:
        raise ValueError("Title cannot be empty")
    settings = get_settings()
    if len(stripped) > settings.max_title_length:
        raise ValueError(
            f"Title exceeds maximum length of {settings.max_title_length:,} characters "
            f"(got {len(stripped):,} characters).",
        )
    return stripped


def validate_notes_length(notes: str | None) -> str | None:
    """Validate that notes don't exceed maximum length."""
    settings = get_settings()
    if notes is not None and len(notes) > settings.max_notes_length:
        raise ValueError(
            f"Notes exceed maximum length of {settings.max_notes_length:,} characters "
            f"(got {len(notes):,} characters).",
        )
    return notes
