"""
Candidate Extraction
====================

Heuristic topic/entity extraction used when building a network from raw
evidence. This is deliberately approximate: capitalization, quoting and
word frequency are cheap signals, not a language model.

Network construction only depends on the CandidateExtractor protocol, so a
real NLP component can replace HeuristicExtractor without touching network
or inference code.
"""

import re
from collections import Counter
from typing import Iterable, List, Optional, Protocol


# =============================================================================
# PATTERNS
# =============================================================================

CAPITALIZED = re.compile(r"\b[A-Z][a-z]+\b")
QUOTED = re.compile(r'"([^"]+)"')
KEY_PHRASES = (
    re.compile(r"\b\w+\s+(?:is|are|was|were)\s+\w+"),            # "X is Y"
    re.compile(r"\b\w+\s+(?:indicates?|shows?|suggests?)\b"),    # indicators
    re.compile(r"\b(?:positive|negative|bullish|bearish|high|low|increasing|decreasing)\b"),
)
TOPIC_SPLIT = re.compile(r"[_\s-]+")
NON_WORD = re.compile(r"[^\w]")

STOPWORDS = frozenset({'the', 'is', 'are', 'was', 'were', 'and', 'or', 'but', 'for', 'with'})


# =============================================================================
# EXTRACTOR PROTOCOL
# =============================================================================

class CandidateExtractor(Protocol):
    """Extracts topic/entity candidates from evidence text."""

    def extract_candidates(self, text: str) -> List[str]:
        ...


class HeuristicExtractor:
    """
    Default extractor - no domain assumptions.

    Signals:
    - Capitalized words (potential proper nouns)
    - Quoted spans
    - Short key phrases ("X is Y", "X shows", direction words)
    - Words longer than 3 letters that repeat, or longer than 7 letters
    """

    def __init__(
        self,
        min_length: int = 3,
        frequent_min_length: int = 4,
        long_min_length: int = 8,
    ):
        self.min_length = min_length
        self.frequent_min_length = frequent_min_length
        self.long_min_length = long_min_length

    def extract_candidates(self, text: str) -> List[str]:
        lowered = text.lower()
        found: List[str] = []

        found.extend(w.lower() for w in CAPITALIZED.findall(text))
        found.extend(QUOTED.findall(lowered))
        for pattern in KEY_PHRASES:
            found.extend(pattern.findall(lowered))

        words = (NON_WORD.sub('', w) for w in lowered.split())
        freq = Counter(w for w in words if len(w) >= self.frequent_min_length)
        for word, count in freq.items():
            if count > 1 or len(word) >= self.long_min_length:
                found.append(word)

        return self._filter(found)

    def topic_candidates(self, topic: Optional[str]) -> List[str]:
        """A declared topic and its sub-tokens."""
        if not topic:
            return []
        return self._filter([topic] + TOPIC_SPLIT.split(topic))

    def _filter(self, candidates: Iterable[str]) -> List[str]:
        seen = set()
        kept = []
        for c in candidates:
            c = c.strip()
            if len(c) < self.min_length or c in STOPWORDS or c in seen:
                continue
            seen.add(c)
            kept.append(c)
        return kept


_default_extractor = HeuristicExtractor()


def extract_candidates(text: str) -> List[str]:
    """Candidates from text using the default heuristics."""
    return _default_extractor.extract_candidates(text)
