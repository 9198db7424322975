"""
Label set construction and label name sanitizing.

Labels are always carried as ordered (name, value) pairs so a name can
never drift out of step with its value.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List, Tuple

# Prometheus label naming convention
VALID_LABEL_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
INVALID_CHARS_RE = re.compile(r"[^a-zA-Z0-9_]")

LABEL_PREFIX = "label_"

Pair = Tuple[str, str]


def format_label_name(label: str, with_prefix: bool = True) -> str:
    """Make a pod label key usable as a Prometheus label name.

    Valid names are returned untouched. Anything else has invalid
    characters replaced with "_", gets a leading "_" if it starts with a
    digit, and is prefixed with "label_" when with_prefix is set:

        "oip/author-username" -> "label_oip_author_username"
    """
    if VALID_LABEL_RE.match(label):
        return label

    sanitized = INVALID_CHARS_RE.sub("_", label) or "_"
    if sanitized[0].isdigit():
        sanitized = "_" + sanitized

    if with_prefix:
        sanitized = LABEL_PREFIX + sanitized
    return sanitized


class LabelSet:
    """Ordered label pairs for one observation."""

    def __init__(self, pairs: Iterable[Pair] = ()):
        self._pairs: List[Pair] = list(pairs)

    def add(self, name: str, value: str) -> "LabelSet":
        self._pairs.append((name, value))
        return self

    def extend(self, pairs: Iterable[Pair]) -> "LabelSet":
        for name, value in pairs:
            self.add(name, value)
        return self

    def copy(self) -> "LabelSet":
        return LabelSet(self._pairs)

    def pairs(self) -> Tuple[Pair, ...]:
        return tuple(self._pairs)

    def names(self) -> List[str]:
        return [name for name, _ in self._pairs]

    def __iter__(self) -> Iterator[Pair]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)
