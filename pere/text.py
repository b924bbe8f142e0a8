"""
Lexical heuristics shared by conflict detection, aggregation and updating.

These are bag-of-words signals (word overlap, antonym and negation
markers), not language understanding. Terms match on word boundaries, so
"agree" does not fire inside "disagree".
"""

import re
from functools import lru_cache
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .types import Evidence


# =============================================================================
# LEXICONS
# =============================================================================

# (affirming, opposing) phrase pairs that signal direct contradiction
CONTRADICTION_PATTERNS: Tuple[Tuple[str, str], ...] = (
    ("is working", "is failing"),
    ("is functional", "is broken"),
    ("is true", "is false"),
    ("confirmed", "denied"),
    ("supports", "refutes"),
    ("agree", "disagree"),
    ("success", "failure"),
    ("positive", "negative"),
)

CONFLICT_ANTONYMS: Tuple[Tuple[str, str], ...] = (
    ("working", "failing"),
    ("up", "down"),
    ("good", "bad"),
    ("yes", "no"),
    ("true", "false"),
    ("positive", "negative"),
    ("success", "failure"),
)

OPPOSITION_ANTONYMS: Tuple[Tuple[str, str], ...] = (
    ("positive", "negative"),
    ("good", "bad"),
    ("success", "failure"),
    ("up", "down"),
    ("increase", "decrease"),
    ("growth", "decline"),
    ("bullish", "bearish"),
    ("working", "failing"),
    ("true", "false"),
)

NEGATION_MARKERS = ("not", "no", "never", "false", "incorrect", "failing", "failed")
PROPOSITION_NEGATIONS = ("not", "no", "never", "false")
VAGUE_TERMS = ("maybe", "possibly", "might", "could", "perhaps", "unclear")

SENTENCE_SPLIT = re.compile(r"[.!?]+")


# =============================================================================
# MATCHING
# =============================================================================

@lru_cache(maxsize=256)
def _term_pattern(term: str) -> "re.Pattern":
    words = [re.escape(w) for w in term.split()]
    return re.compile(r"\b" + r"\s+".join(words) + r"\b", re.IGNORECASE)


def contains_term(text: str, term: str) -> bool:
    """Whole-word (or whole-phrase) case-insensitive match."""
    return _term_pattern(term).search(text) is not None


def contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(contains_term(text, t) for t in terms)


def has_pair(text_a: str, text_b: str, pairs: Sequence[Tuple[str, str]]) -> bool:
    """True if one text carries one side of a pair and the other text the other side."""
    for left, right in pairs:
        if (contains_term(text_a, left) and contains_term(text_b, right)) or \
           (contains_term(text_a, right) and contains_term(text_b, left)):
            return True
    return False


def word_set(text: str) -> FrozenSet[str]:
    return frozenset(text.lower().split())


def jaccard(a: str, b: str) -> float:
    """Word-overlap similarity of two strings; 0 when both are empty."""
    words_a, words_b = word_set(a), word_set(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


# =============================================================================
# TOPICS
# =============================================================================

def leading_terms(content: str, count: int = 3, min_length: int = 4) -> List[str]:
    """First `count` lowercase words of at least `min_length` characters."""
    return [w for w in content.lower().split() if len(w) >= min_length][:count]


def conflict_topic(evidence: Evidence) -> str:
    """Declared topic, or the first three significant words."""
    return evidence.topic or " ".join(leading_terms(evidence.content))


def aggregation_topic(evidence: Evidence) -> str:
    """Declared topic, or the first three words joined with underscores."""
    return evidence.topic or "_".join(evidence.content.lower().split()[:3])


def topic_similarity(a: Evidence, b: Evidence) -> float:
    topic_a, topic_b = conflict_topic(a), conflict_topic(b)
    if topic_a == topic_b:
        return 1.0
    return jaccard(topic_a, topic_b)


def same_declared_topic(a: Evidence, b: Evidence) -> bool:
    return a.topic is not None and a.topic == b.topic


def propositions(content: str) -> List[str]:
    """
    Crude subject-predicate stubs: the first three words of every sentence
    longer than ten characters.
    """
    props = []
    for sentence in SENTENCE_SPLIT.split(content):
        words = sentence.strip().split()
        if len(sentence.strip()) > 10 and len(words) >= 3:
            props.append(" ".join(words[:3]).lower())
    return props


def negation_mismatch(a: str, b: str, negations: Sequence[str] = PROPOSITION_NEGATIONS) -> bool:
    """True if `a` carries a negation that `b` lacks."""
    return any(contains_term(a, n) and not contains_term(b, n) for n in negations)


def first_word(text: str) -> Optional[str]:
    words = text.split()
    return words[0] if words else None
