from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import List

STOPWORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were been
    be have has had do does did will would could should may might shall can this
    that these those it its i you he she we they me him her us them my your his
    our their what which who whom where when how not no nor if then than too
    very just about above after again all also am any because before between
    both each few get here into more most other out over own same so some such
    up only now new one two like make many well back even give good know look
    see take come find first go great high last long made much need never next
    old part place point right show still tell thing think three through under
    use way work world year click read learn best top buy free www http https
    html com org net
    """.split()
)

KEYWORD_STRIP_RE = re.compile(r"[^a-z0-9\s'-]")
PHRASE_STRIP_RE = re.compile(r"[^a-z0-9\s]")
MIN_PHRASE_LENGTH = 7


@dataclass(frozen=True)
class Keyword:
    term: str
    score: float
    frequency: int


def tokenize_for_keywords(text: str) -> List[str]:
    if not text:
        return []
    cleaned = KEYWORD_STRIP_RE.sub(" ", text.lower())
    return [w for w in cleaned.split() if len(w) > 2 and w not in STOPWORDS]


def rank_keywords(text: str, count: int = 8) -> List[Keyword]:
    """Rank terms by ``frequency * (1 + 0.1 * len(term))``.

    Equal scores keep the order in which the terms first appear.
    """
    frequencies = Counter(tokenize_for_keywords(text))
    ranked = [
        Keyword(term=term, score=freq * (1 + len(term) * 0.1), frequency=freq)
        for term, freq in frequencies.items()
    ]
    ranked.sort(key=lambda k: k.score, reverse=True)
    return ranked[:count]


def extract_keywords(text: str, count: int = 8) -> List[str]:
    return [k.term for k in rank_keywords(text, count)]


def extract_phrases(text: str, count: int = 5) -> List[str]:
    """Adjacent word pairs that occur more than once, most frequent first."""
    if not text:
        return []
    words = [w for w in PHRASE_STRIP_RE.sub(" ", text.lower()).split() if len(w) > 2]
    bigrams = Counter(
        f"{first} {second}"
        for first, second in zip(words, words[1:])
        if len(first) + 1 + len(second) > MIN_PHRASE_LENGTH
    )
    repeated = [(pair, cnt) for pair, cnt in bigrams.items() if cnt > 1]
    repeated.sort(key=lambda item: item[1], reverse=True)
    return [pair for pair, _ in repeated[:count]]
