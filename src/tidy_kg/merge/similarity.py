"""String similarity and name normalization for duplicate detection."""

import re

import inflect
from unidecode import unidecode

_INFLECT_ENGINE = inflect.engine()

PAIR_SEPARATOR = "|"

_NON_ALNUM_SPACE = re.compile(r"[^a-z0-9\s]")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_name(name: str) -> str:
    """Normalize entity name: ASCII, lowercase, single-spaced."""
    return " ".join(unidecode(name).lower().split())


def singularize(word: str) -> str:
    # singular_noun returns False if the word is already singular
    singular = _INFLECT_ENGINE.singular_noun(word)
    return singular if singular else word


def first_significant_word(normalized: str) -> str:
    """First word longer than two characters, singularized.

    Falls back to the whole name with punctuation and spaces removed.
    """
    words = [w for w in _NON_ALNUM_SPACE.sub("", normalized).split() if len(w) > 2]
    if words:
        return singularize(words[0])
    return _NON_ALNUM.sub("", normalized)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit-cost insert, delete and substitute."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """Case-insensitive similarity in [0, 1]: ``(longer - distance) / longer``.

    Empty input scores 0; equal strings score 1.
    """
    if not a or not b:
        return 0.0
    s1, s2 = a.lower(), b.lower()
    if s1 == s2:
        return 1.0
    longer = max(len(s1), len(s2))
    return (longer - levenshtein_distance(s1, s2)) / longer


def pair_key(first_id: str, second_id: str) -> str:
    """Order-independent key for a pair of entity ids."""
    return PAIR_SEPARATOR.join(sorted((first_id, second_id)))


def split_pair_key(key: str) -> tuple[str, str]:
    """Split a pair key into (primary_id, secondary_id).

    Raises:
        ValueError: If the key is not two non-empty ids joined by ``|``
    """
    parts = key.split(PAIR_SEPARATOR)
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Malformed merge pair key: {key!r}")
    return parts[0], parts[1]
