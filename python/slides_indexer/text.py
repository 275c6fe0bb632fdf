"""
Text utilities shared by every extraction path.

Raw text from slide markup, PDF content streams, pdftotext and OCR all go
through the same cleanup and the same "is this real text?" heuristic, so a
page is judged identically whichever tier produced it.
"""

import re
from collections import Counter
from typing import Iterable, List, Sequence, Tuple

from .models import UnitPreview


TAG_RE = re.compile(r"<[^>]+>")
# Control characters except tab/LF/CR, plus the Unicode replacement char
CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufffd]")
TOKEN_RE = re.compile(r"[a-z0-9]{3,}")

NOISE_WORDS = frozenset({
    "rectangle", "title", "subtitle", "body", "outline", "placeholder",
    "arial", "calibri", "bold", "italic", "regular",
})

NOISE_PATTERNS = (
    re.compile(r"^[a-z]{2}-[a-z]{2}$"),   # locale tags: en-us
    re.compile(r"^latin-\d+$"),
    re.compile(r"^slide\d*$"),
    re.compile(r"^text\d*$"),
)

VOWELS = frozenset("aeiou")


def strip_xml_tags(text: str) -> str:
    return TAG_RE.sub(" ", text)


def strip_binary_artifacts(text: str) -> str:
    return CONTROL_RE.sub(" ", text)


def cleanup_whitespace(text: str) -> str:
    return " ".join(text.split())


def is_noise_token(token: str) -> bool:
    """Structural labels (placeholder names, fonts, locales) are not content."""
    stripped = token.replace("(", "").replace(")", "")
    if not any(ch.isascii() and ch.isalpha() for ch in stripped):
        return True
    lowered = stripped.lower()
    if lowered in NOISE_WORDS:
        return True
    return any(pattern.match(lowered) for pattern in NOISE_PATTERNS)


def filter_noise_tokens(text: str) -> str:
    return " ".join(token for token in text.split() if not is_noise_token(token))


def clean_text(raw: str) -> str:
    """Full cleanup: tags, control characters, noise tokens, whitespace."""
    return cleanup_whitespace(filter_noise_tokens(strip_binary_artifacts(strip_xml_tags(raw))))


def is_gibberish(text: str) -> bool:
    """
    Reject decoder and OCR noise.

    Short strings are never judged. Longer ones must look like natural
    language: mostly letters, not shouted, sensible vowel share, and a
    plausible spread of token lengths.
    """
    compact = "".join(text.split())
    if len(compact) < 40:
        return False

    letters = [ch for ch in compact if ch.isalpha()]
    if not letters:
        return True
    if len(letters) / len(compact) < 0.35:
        return True

    ascii_letters = [ch for ch in letters if ch.isascii()]
    if len(ascii_letters) > 80:
        upper = sum(1 for ch in ascii_letters if ch.isupper())
        if upper / len(ascii_letters) > 0.9:
            return True

    # Vowel share only means something for Latin-script text
    if len(ascii_letters) >= 40 and len(ascii_letters) / len(letters) > 0.8:
        vowels = sum(1 for ch in ascii_letters if ch.lower() in VOWELS)
        ratio = vowels / len(ascii_letters)
        if ratio < 0.15 or ratio > 0.65:
            return True

    tokens = text.split()
    if sum(1 for token in tokens if len(token) > 40) > 2:
        return True
    if len(tokens) >= 10:
        singles = sum(1 for token in tokens if len(token) == 1)
        if singles / len(tokens) > 0.5:
            return True
    if tokens and sum(len(token) for token in tokens) / len(tokens) > 15:
        return True

    return False


def has_meaningful_text(text: str) -> bool:
    trimmed = text.strip()
    if not trimmed:
        return False
    if len(trimmed) < 12:
        return any(ch.isalnum() for ch in trimmed)
    return not is_gibberish(trimmed)


def tokenize(text: str) -> List[str]:
    return TOKEN_RE.findall(text.lower())


def derive_keywords(text: str, previews: Sequence[UnitPreview], limit: int) -> List[str]:
    """
    Most frequent tokens that are not already visible in a unit preview.

    Ties keep first-seen order (Counter preserves insertion order and
    sorted() is stable).
    """
    frequencies = Counter(tokenize(text))
    preview_tokens = {token for preview in previews for token in tokenize(preview.text)}

    ranked = sorted(
        ((token, count) for token, count in frequencies.items() if token not in preview_tokens),
        key=lambda item: item[1],
        reverse=True,
    )
    return [token for token, _ in ranked[:limit]]


def truncate_snippet(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def build_previews(raw_pages: Iterable[str]) -> Tuple[List[UnitPreview], str]:
    """
    Clean each page and keep the meaningful ones.

    Returns the previews (1-based page index preserved, so skipped pages
    leave gaps) and the combined text of the kept pages.
    """
    previews: List[UnitPreview] = []
    for index, raw_page in enumerate(raw_pages, start=1):
        cleaned = clean_text(raw_page)
        if has_meaningful_text(cleaned):
            previews.append(UnitPreview(index=index, text=cleaned))

    combined = " ".join(preview.text for preview in previews)
    return previews, combined
