"""Identifier case conventions.

Splits identifiers into words and re-joins them in a target style. Used by
the analyzer to suggest conforming names and by the fixer to produce
rename edits.
"""

import re
from enum import Enum


class CaseStyle(str, Enum):
    """Supported identifier case conventions."""

    CAMEL = "camelCase"
    PASCAL = "PascalCase"
    SNAKE = "snake_case"
    KEBAB = "kebab-case"
    CONSTANT = "CONSTANT_CASE"


_WORD_BOUNDARY = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")


def split_words(name: str) -> list[str]:
    """Split an identifier into lowercase words.

    >>> split_words("parseHTTPResponse_v2")
    ['parse', 'http', 'response', 'v', '2']
    """
    words: list[str] = []
    for chunk in re.split(r"[_\-\s$]+", name):
        words.extend(match.group(0).lower() for match in _WORD_BOUNDARY.finditer(chunk))
    return words


def apply_case_style(name: str, style: CaseStyle | str) -> str:
    """Rewrite ``name`` in the given case style.

    Returns the name unchanged when it has no word characters.
    """
    style = CaseStyle(style)
    words = split_words(name)
    if not words:
        return name

    match style:
        case CaseStyle.CAMEL:
            # A leading number keeps the word after it lowercase: 2fa -> _2fa
            lead = 2 if words[0].isdigit() and len(words) > 1 else 1
            result = "".join(words[:lead]) + "".join(w.capitalize() for w in words[lead:])
        case CaseStyle.PASCAL:
            result = "".join(w.capitalize() for w in words)
        case CaseStyle.SNAKE:
            result = "_".join(words)
        case CaseStyle.KEBAB:
            result = "-".join(words)
        case CaseStyle.CONSTANT:
            result = "_".join(w.upper() for w in words)

    # Identifiers cannot start with a digit
    if result[0].isdigit():
        result = "_" + result
    return result
