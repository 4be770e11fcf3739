"""
Stateless tag-set helpers.

A tag set is kept as an ordered list of unique strings: order is irrelevant
for storage but is preserved so the panel can show tags in the order they
were staged.
"""

import re
from typing import Iterable

from eds_calendar_tagger.models import TAG_SIGIL

# Title tokens of the form "#word" (letters, digits, underscore)
_TITLE_TAG_RE = re.compile(r"#\w+")


def with_sigil(value: str) -> str:
    """Prepend the tag sigil unless the value already starts with it."""
    return value if value.startswith(TAG_SIGIL) else f"{TAG_SIGIL}{value}"


def unique(tags: Iterable[str]) -> list[str]:
    """De-duplicate, keeping the first occurrence of each tag."""
    return list(dict.fromkeys(tags))


def toggle(tags: Iterable[str], tag: str) -> list[str]:
    """Remove ``tag`` when present, otherwise append it."""
    current = unique(tags)
    if tag in current:
        current.remove(tag)
    else:
        current.append(tag)
    return current


def title_tokens(title: str | None) -> list[str]:
    """Return every ``#word`` token in a title, in order of appearance."""
    if not title:
        return []
    return _TITLE_TAG_RE.findall(title)


def title_has_tag(title: str | None, tag: str) -> bool:
    """Case-insensitive check for ``tag`` among the title's tokens."""
    wanted = tag.lower()
    return any(token.lower() == wanted for token in title_tokens(title))

