"""
Catalog search filter.

A deliberately small matcher: every query token must occur somewhere in
an entry's lowercase corpus (name, path, snippet, unit previews,
keywords). Tokens are quoted phrases, wildcard terms (* and ?) or plain
substrings. There is no ranking; results keep catalog order.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern

from .models import IndexEntry


QUERY_TOKEN_RE = re.compile(r'"([^"]+)"|(\S+)')


def wildcard_to_regex(term: str) -> Optional[Pattern[str]]:
    """Translate a shell-style wildcard term into a case-insensitive regex."""
    converted = "".join(
        ".*" if ch == "*" else "." if ch == "?" else re.escape(ch)
        for ch in term
    )
    if not converted:
        return None
    return re.compile(f".*{converted}.*", re.IGNORECASE | re.DOTALL)


@dataclass
class SearchPattern:
    """A parsed query."""
    terms: List[str] = field(default_factory=list)
    phrases: List[str] = field(default_factory=list)
    wildcards: List[Pattern[str]] = field(default_factory=list)

    @classmethod
    def parse(cls, raw: str) -> "SearchPattern":
        pattern = cls()
        for match in QUERY_TOKEN_RE.finditer(raw or ""):
            phrase, token = match.groups()
            if phrase is not None:
                value = phrase.strip().lower()
                if value:
                    pattern.phrases.append(value)
                continue

            value = token.strip()
            if not value:
                continue
            if "*" in value or "?" in value:
                regex = wildcard_to_regex(value)
                if regex is not None:
                    pattern.wildcards.append(regex)
            else:
                pattern.terms.append(value.lower())
        return pattern

    @property
    def is_empty(self) -> bool:
        return not (self.terms or self.phrases or self.wildcards)


def build_corpus(entry: IndexEntry) -> str:
    parts = [entry.display_name.lower(), entry.path.lower()]
    if entry.snippet:
        parts.append(entry.snippet.lower())
    parts.extend(preview.text.lower() for preview in entry.unit_previews)
    if entry.keywords:
        parts.append(" ".join(entry.keywords).lower())
    return " ".join(parts)


def matches_query(entry: IndexEntry, pattern: SearchPattern) -> bool:
    """True if every phrase, term and wildcard of the query matches the entry."""
    if pattern.is_empty:
        return True

    corpus = build_corpus(entry)
    if not all(phrase in corpus for phrase in pattern.phrases):
        return False
    if not all(term in corpus for term in pattern.terms):
        return False
    return all(regex.search(corpus) for regex in pattern.wildcards)
