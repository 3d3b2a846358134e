"""Slug helpers shared by lessons and exercises."""

import re
import unicodedata
from typing import Callable

_NON_ALNUM = re.compile(r'[^a-z0-9]+')


def slugify(text: str) -> str:
    """Return a lowercase ASCII slug for `text` (`"Two Fer!"` -> `"two-fer"`)."""
    normalized = unicodedata.normalize('NFKD', text or '').encode('ascii', 'ignore').decode('ascii')
    slug = _NON_ALNUM.sub('-', normalized.lower()).strip('-')
    return slug or 'item'


def generate_unique_slug(name: str, exists: Callable[[str], bool]) -> str:
    """Return a slug for `name` that `exists` reports as free.

    Collisions get a numeric suffix: `two-fer`, `two-fer-1`, `two-fer-2`...
    """
    base = slugify(name)
    candidate = base
    counter = 1
    while exists(candidate):
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate
