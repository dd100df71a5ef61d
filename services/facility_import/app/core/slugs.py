"""Slug helpers for facility records."""

import re
import unicodedata


def slugify(value: str) -> str:
    """Convert arbitrary text into a URL slug.

    Steps:
    1. Unicode NFD normalization and removal of combining marks
    2. Lowercase
    3. Every run of non-alphanumeric characters becomes a single dash
    4. Leading/trailing dashes stripped

    Args:
        value: Raw text

    Returns:
        Slug string (may be empty)
    """
    if not value:
        return ""

    normalized = unicodedata.normalize("NFD", value)
    normalized = "".join(c for c in normalized if unicodedata.category(c) != "Mn")
    normalized = normalized.lower()
    normalized = re.sub(r"[^a-z0-9]+", "-", normalized)

    return normalized.strip("-")


def generate_slug(name: str, location: str = "") -> str:
    """Build a facility slug from its name and formatted address.

    Placeholder facilities have no location yet, so the slug is derived
    from the name alone until geocoding fills the address in.
    """
    return slugify(f"{name} {location}" if location else name)
