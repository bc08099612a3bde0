"""
Name normalization and fuzzy matching for Pantry Planner.

Decides whether two free-text names denote the same grocery item. The pipeline is
tokenize -> lowercase -> strip punctuation -> singularize, followed by three checks:
exact equality, whole-word containment and token-set (Jaccard) overlap.

The predicate is symmetric and deterministic, so callers may pass the recipe
name and the pantry name in either order.
"""

import re
from typing import Any, Iterable, List, Optional

from utils import get_logger

logger = get_logger(__name__)


# Shorter name must be at least this long to count as contained in the longer one
MIN_CONTAINMENT_LENGTH = 3

# Fraction of shared significant tokens (intersection over union) needed to match
TOKEN_OVERLAP_THRESHOLD = 0.5

# Tokens this short carry no signal for overlap ("of", "a", ...)
MIN_TOKEN_LENGTH = 3

STOP_TOKENS = {'and', 'the', 'for', 'with', 'or', 'of'}

IRREGULAR_PLURALS = {
    'cookies': 'cookie',
    'brownies': 'brownie',
    'pies': 'pie',
    'chilies': 'chili',
    'chillies': 'chili',
    'leaves': 'leaf',
    'loaves': 'loaf',
    'halves': 'half',
    'knives': 'knife',
}

UNCOUNTABLE = {'molasses', 'series', 'species', 'swiss', 'hummus', 'couscous', 'asparagus', 'citrus'}


def singularize(word: str) -> str:
    """Strip common English plural suffixes. Not a morphological analyzer."""
    if len(word) <= 3 or word in UNCOUNTABLE:
        return word
    if word in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[word]
    if word.endswith('ies') and len(word) > 4:
        return word[:-3] + 'y'  # berries -> berry
    if word.endswith('oes'):
        return word[:-2]  # tomatoes -> tomato
    if word.endswith(('ches', 'shes', 'xes', 'zes', 'sses')):
        return word[:-2]  # peaches -> peach, boxes -> box
    if word.endswith('s') and not word.endswith(('ss', 'us')):
        return word[:-1]
    return word


def normalize_item_name(name: Optional[str]) -> str:
    """
    Normalized key for an item name: lowercase, punctuation removed,
    whitespace collapsed, each word singularized.

    A name made only of punctuation keeps its lowercased text so it still
    equals itself.
    """
    if not name:
        return ""

    lowered = re.sub(r'\s+', ' ', str(name).lower()).strip()
    text = re.sub(r"['’]", '', lowered)
    text = re.sub(r'[^\w\s]|_', ' ', text)
    tokens = [singularize(token) for token in text.split()]

    return ' '.join(tokens) or lowered


def matches(ingredient_name: Optional[str], candidate_name: Optional[str]) -> bool:
    """Check whether two names denote the same grocery item"""
    left = normalize_item_name(ingredient_name)
    right = normalize_item_name(candidate_name)
    if not left or not right:
        return False

    if left == right:
        return True

    shorter, longer = sorted((left, right), key=lambda s: (len(s), s))
    if len(shorter) >= MIN_CONTAINMENT_LENGTH and re.search(rf'\b{re.escape(shorter)}\b', longer):
        return True

    return token_overlap(left, right) >= TOKEN_OVERLAP_THRESHOLD


def token_overlap(left: str, right: str) -> float:
    """Jaccard overlap of the significant tokens of two normalized names"""
    left_tokens = _significant_tokens(left)
    right_tokens = _significant_tokens(right)
    if not left_tokens or not right_tokens:
        return 0.0

    return len(left_tokens & right_tokens) / len(left_tokens | right_tokens)


def best_matches(ingredient_name: Optional[str], candidates: Optional[Iterable[Any]]) -> List[Any]:
    """
    Every candidate whose name matches ingredient_name, in input order.

    Candidates may be model objects with a ``name`` attribute, dicts with a
    ``name`` key, or plain strings. There is no single-winner ranking; callers
    aggregate over all matches.
    """
    if not ingredient_name or not candidates:
        return []

    found = [candidate for candidate in candidates if matches(ingredient_name, _name_of(candidate))]
    logger.debug(f"'{ingredient_name}' matched {len(found)} candidate(s)")
    return found


def _significant_tokens(normalized: str) -> set:
    return {
        token for token in normalized.split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_TOKENS
    }


def _name_of(candidate: Any) -> Optional[str]:
    if candidate is None:
        return None
    if isinstance(candidate, str):
        return candidate
    if isinstance(candidate, dict):
        return candidate.get('name')
    return getattr(candidate, 'name', None)
