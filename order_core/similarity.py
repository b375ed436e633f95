# Similarity Engine for order-core
# Edit distance, Jaro-Winkler and token overlap; pure functions, no state

import logging
from typing import Dict, Iterable, List, Optional

from rapidfuzz.distance import JaroWinkler, Levenshtein

from .normalizer import extreme_normalize, normalize, tokenize

logger = logging.getLogger(__name__)

# Token overlap guards against word reordering, edit distance catches typos
TOKEN_WEIGHT = 0.65
EDIT_WEIGHT = 0.35

PREFIX_BONUS = 0.15


def levenshtein(a: str, b: str) -> int:
    return Levenshtein.distance(a or '', b or '')


def jaro_winkler(a: str, b: str) -> float:
    """Jaro similarity plus up to 4 matching leading chars at 0.1 each."""
    a, b = a or '', b or ''
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return JaroWinkler.similarity(a, b, prefix_weight=0.1)


def token_overlap(tokens_a: Iterable[str], tokens_b: Iterable[str]) -> float:
    set_a, set_b = set(tokens_a), set(tokens_b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / max(len(set_a), len(set_b))


def edit_similarity(a: str, b: str) -> float:
    """1 - levenshtein / longest length, in [0, 1]"""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return max(0.0, 1.0 - levenshtein(a, b) / max_len)


def similarity_score(a, b) -> float:
    """
    Blend of token overlap and length-normalized edit distance over the
    normalized forms. Accepts strings or token lists.
    """
    a_norm = normalize(' '.join(a) if isinstance(a, (list, tuple)) else a)
    b_norm = normalize(' '.join(b) if isinstance(b, (list, tuple)) else b)
    if not a_norm or not b_norm:
        return 0.0
    overlap = token_overlap(tokenize(a_norm), tokenize(b_norm))
    score = TOKEN_WEIGHT * overlap + EDIT_WEIGHT * edit_similarity(a_norm, b_norm)
    return max(0.0, min(1.0, score))


def string_similarity(a: str, b: str) -> float:
    a_norm, b_norm = extreme_normalize(a), extreme_normalize(b)
    if not a_norm or not b_norm:
        return 0.0
    return edit_similarity(a_norm, b_norm)


def fuzzy_match(query: str, candidates: List[str], threshold: float = 0.6) -> List[Dict]:
    """
    Rank candidates against a query by Jaro-Winkler over extreme-normalized
    forms. Candidates sharing the query's first three characters get a bonus.
    Returns [{'candidate': str, 'score': float}] best first.
    """
    if not query or not isinstance(candidates, (list, tuple)):
        return []
    query_norm = extreme_normalize(query)
    results = []
    for candidate in candidates:
        if not candidate:
            continue
        candidate_norm = extreme_normalize(candidate)
        score = jaro_winkler(query_norm, candidate_norm)
        if query_norm and candidate_norm.startswith(query_norm[:3]):
            score += PREFIX_BONUS
        score = min(1.0, score)
        if score >= threshold:
            results.append({'candidate': candidate, 'score': score})
    results.sort(key=lambda r: r['score'], reverse=True)
    logger.debug("fuzzy_match '%s': %d of %d candidates above %.2f",
                 query, len(results), len(candidates), threshold)
    return results


def best_match(query: str, candidates: List[str]) -> Optional[Dict]:
    results = fuzzy_match(query, candidates, threshold=0.5)
    return results[0] if results else None
