"""Text cleaning utilities for transcripts and model replies.

Spoken transcripts and language-model output pass through these functions
before being shown or parsed. Uses only stdlib to avoid unnecessary
dependencies.
"""

import re
import unicodedata

_MULTI_WHITESPACE_RE = re.compile(r"[ \t]+")
_MULTI_NEWLINES_RE = re.compile(r"\n{3,}")
_ZERO_WIDTH_RE = re.compile(r"[\u200b\ufeff]")

# Longest runs first so "**" is removed before "*".
_FORMATTING_TOKENS = ("```", "###", "---", "___", "**", "##", "--", "__", "~~", "*", "#", "`", "[", "]")


def normalize_unicode(text: str) -> str:
    """Apply NFC normalization and strip zero-width spaces.

    NFC (not NFKC) keeps the zero-width joiners Indic scripts depend on.
    """
    text = unicodedata.normalize("NFC", text)
    return _ZERO_WIDTH_RE.sub("", text)


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace runs and limit consecutive blank lines."""
    text = _MULTI_WHITESPACE_RE.sub(" ", text)
    text = _MULTI_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def strip_formatting_symbols(text: str) -> str:
    """Remove markdown emphasis, headings, fences and brackets from a reply."""
    for token in _FORMATTING_TOKENS:
        text = text.replace(token, "")
    return text


def clean_transcript(text: str) -> str:
    """Normalize a speech-recognition transcript."""
    return normalize_whitespace(normalize_unicode(text))


def clean_model_reply(text: str) -> str:
    """Full cleaning pipeline for conversational replies: symbols → unicode → whitespace."""
    text = strip_formatting_symbols(text)
    text = normalize_unicode(text)
    return normalize_whitespace(text)
