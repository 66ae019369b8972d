"""Interrogative keywords used to recognise question lines.

One entry per supported language. Adding a language means adding a
tuple here (or passing a custom registry to the parser); the parser
itself holds no literals. Latin-script words match on word boundaries,
other scripts by substring.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from bolonyay.models.domain import SupportedLanguage

DEFAULT_INTERROGATIVES: dict[SupportedLanguage, tuple[str, ...]] = {
    SupportedLanguage.ENGLISH: ("what", "who", "when", "where", "how", "which", "why", "whom"),
    SupportedLanguage.HINDI: ("क्या", "कौन", "कब", "कहाँ", "कहां", "कैसे", "किस", "कितना", "कितने"),
    SupportedLanguage.GUJARATI: ("શું", "કોણ", "ક્યારે", "ક્યાં", "કેવી રીતે", "કેમ", "કેટલા"),
    SupportedLanguage.URDU: ("کیا", "کون", "کب", "کہاں", "کیسے", "کس", "کتنا"),
    SupportedLanguage.MARATHI: ("काय", "कोण", "केव्हा", "कधी", "कुठे", "कसे", "किती"),
}


class InterrogativeKeywords:
    """Compiled matcher over a per-language keyword registry."""

    def __init__(self, registry: Mapping[SupportedLanguage | str, Iterable[str]] | None = None) -> None:
        source = DEFAULT_INTERROGATIVES if registry is None else registry
        self._registry: dict[str, tuple[str, ...]] = {
            str(language): tuple(word.strip().lower() for word in words if word.strip())
            for language, words in source.items()
        }
        latin = sorted({w for words in self._registry.values() for w in words if w.isascii()})
        self._latin_re = (
            re.compile(r"\b(?:" + "|".join(map(re.escape, latin)) + r")\b", re.IGNORECASE)
            if latin
            else None
        )
        self._other = tuple(
            sorted({w for words in self._registry.values() for w in words if not w.isascii()})
        )

    @property
    def languages(self) -> tuple[str, ...]:
        return tuple(self._registry)

    def keywords_for(self, language: SupportedLanguage | str) -> tuple[str, ...]:
        return self._registry.get(str(language), ())

    def contains_interrogative(self, text: str) -> bool:
        """True when any registered keyword appears in ``text``."""
        if self._latin_re is not None and self._latin_re.search(text):
            return True
        return any(word in text for word in self._other)
