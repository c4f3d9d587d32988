"""
Two-tier content safety filter.

The strict list blocks content outright. The sensitive list holds words that
belong in history and philosophy writing (death, war, weapons, crime); they
are tracked so the two lists stay disjoint but never trigger a block.

Matching is whole-word and case-insensitive. Redaction works per sentence so
a single bad sentence does not cost the reader the whole document.
"""

import logging
import re
from typing import Any, FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)

STRICT_TERMS: FrozenSet[str] = frozenset({
    # profanity
    "fuck", "fucking", "shit", "bitch", "bastard", "asshole", "damn",
    # explicit sexual content
    "sex", "sexy", "sexual", "nude", "nudity", "naked", "porn", "pornography",
    "erotic", "rape", "orgasm",
    # hate
    "racist", "bigot", "nazi", "supremacist",
    # extreme violence
    "torture", "tortured", "gore", "gory", "dismember", "dismembered",
    "decapitate", "decapitated", "mutilate", "mutilated", "suicide",
    # controlled substances
    "drug", "drugs", "cocaine", "heroin", "meth", "methamphetamine",
    "marijuana", "cannabis", "alcohol", "vodka", "whiskey", "tobacco",
    "cigarette", "cigarettes",
})

SENSITIVE_TERMS: FrozenSet[str] = frozenset({
    "death", "dead", "die", "died", "dying", "kill", "killed", "murder",
    "blood", "war", "wars", "battle", "army", "soldier", "weapon", "weapons",
    "sword", "gun", "bomb", "crime", "criminal", "prison", "violence",
    "violent", "terrorist", "slavery", "execution", "conquest",
})

# A run of text up to and including terminal punctuation, or the unterminated
# tail of the text. Concatenating every match reproduces the input exactly.
_SEGMENT_PATTERN = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")


def _compile(terms: Iterable[str]) -> Optional["re.Pattern[str]"]:
    ordered = sorted(terms, key=len, reverse=True)
    if not ordered:
        return None
    alternation = "|".join(re.escape(term) for term in ordered)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


class SafetyFilter:
    """Validates and redacts generated content against the strict lexicon.

    Args:
        strict_terms: Hard-blocked words; defaults to STRICT_TERMS.
        sensitive_terms: Watched-but-allowed words; defaults to SENSITIVE_TERMS.
        extra_strict_terms: Additional hard-blocked words from configuration.

    Raises:
        ValueError: If the strict and sensitive lists overlap
    """

    def __init__(
        self,
        strict_terms: Optional[Iterable[str]] = None,
        sensitive_terms: Optional[Iterable[str]] = None,
        extra_strict_terms: Iterable[str] = (),
    ):
        strict = {t.lower() for t in (STRICT_TERMS if strict_terms is None else strict_terms)}
        strict |= {t.lower() for t in extra_strict_terms}
        sensitive = {t.lower() for t in (SENSITIVE_TERMS if sensitive_terms is None else sensitive_terms)}
        overlap = strict & sensitive
        if overlap:
            raise ValueError(f"Strict and sensitive terms overlap: {sorted(overlap)}")

        self.strict_terms: FrozenSet[str] = frozenset(strict)
        self.sensitive_terms: FrozenSet[str] = frozenset(sensitive)
        self._strict_pattern = _compile(self.strict_terms)

    def _text_is_safe(self, text: str) -> bool:
        return self._strict_pattern is None or self._strict_pattern.search(text) is None

    def is_safe(self, value: Any) -> bool:
        """Return False if any string inside ``value`` has a strict term.

        Walks strings, lists/tuples and dict values depth-first and stops at
        the first violation. Other scalars are always safe.
        """
        if isinstance(value, str):
            return self._text_is_safe(value)
        if isinstance(value, (list, tuple)):
            return all(self.is_safe(item) for item in value)
        if isinstance(value, dict):
            return all(self.is_safe(item) for item in value.values())
        return True

    def sanitize(self, text: str) -> str:
        """Drop every sentence of ``text`` that holds a strict term.

        Sentences end at ``.``, ``!`` or ``?``; an unterminated tail counts as
        its own sentence. Clean text comes back unchanged.
        """
        segments = _SEGMENT_PATTERN.findall(text)
        kept = [segment for segment in segments if self._text_is_safe(segment)]
        if len(kept) == len(segments):
            return text
        logger.info("safety: redacted %d of %d sentences", len(segments) - len(kept), len(segments))
        return "".join(kept).strip()

    def redact(self, value: Any, protected_keys: FrozenSet[str] = frozenset()) -> Any:
        """Return a copy of ``value`` with every free-text string sanitized.

        Strings stored under a key in ``protected_keys`` (identifiers such as
        names or tags) are left untouched, including everything nested below
        such a key.
        """
        if isinstance(value, str):
            return self.sanitize(value)
        if isinstance(value, list):
            return [self.redact(item, protected_keys) for item in value]
        if isinstance(value, dict):
            return {
                key: item if key in protected_keys else self.redact(item, protected_keys)
                for key, item in value.items()
            }
        return value
