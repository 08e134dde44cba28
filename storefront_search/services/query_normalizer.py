"""
Turns raw user input into the canonical search expression used by the
product index: every surviving token is matched as a word prefix, and all
tokens must match.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

PREFIX_MARKER = ":*"
AND_OPERATOR = " & "

# Anything that is not a letter or a digit (underscore counts as a word char)
_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


@dataclass(frozen=True)
class NormalizedQuery:
    tokens: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.tokens

    @property
    def expression(self) -> str:
        """Canonical AND-of-prefixes form, e.g. ``gold:* & ring:*``"""
        return AND_OPERATOR.join(f"{token}{PREFIX_MARKER}" for token in self.tokens)


def normalize_token(token: str) -> str:
    return _NON_ALNUM.sub("", token).lower()


def normalize_query(raw_query: Optional[str]) -> NormalizedQuery:
    """
    Normalize a raw query string.

    Args:
        raw_query: Text as typed by the user, possibly empty or None

    Returns:
        NormalizedQuery whose tokens keep the input order. An empty token
        tuple means "no text constraint", it is not an error.
    """
    if not raw_query:
        return NormalizedQuery()

    tokens = []
    for part in raw_query.split():
        token = normalize_token(part)
        if token:
            tokens.append(token)

    return NormalizedQuery(tokens=tuple(tokens))
