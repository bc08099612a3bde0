"""
Ingredient line parsing for Pantry Planner.

Turns a free-text recipe line ("2 cups flour, sifted") into a ParsedIngredient
carrying the leading quantity, a canonical unit and the cleaned item name.
Parsing never raises: anything unparseable degrades to a name-only result.
"""

import re
from typing import Dict, List, Optional, Tuple

from models import ParsedIngredient
from utils import get_logger

logger = get_logger(__name__)


# Canonical unit -> accepted spellings
UNIT_ALIASES: Dict[str, List[str]] = {
    'cup': ['cup', 'cups'],
    'tbsp': ['tbsp', 'tbsps', 'tbs', 'tablespoon', 'tablespoons'],
    'tsp': ['tsp', 'tsps', 'teaspoon', 'teaspoons'],
    'oz': ['oz', 'ounce', 'ounces'],
    'lb': ['lb', 'lbs', 'pound', 'pounds'],
    'g': ['g', 'gram', 'grams'],
    'kg': ['kg', 'kilogram', 'kilograms'],
    'ml': ['ml', 'milliliter', 'milliliters', 'millilitre', 'millilitres'],
    'l': ['l', 'liter', 'liters', 'litre', 'litres'],
}

_UNIT_LOOKUP = {alias: canonical for canonical, aliases in UNIT_ALIASES.items() for alias in aliases}

# Words describing preparation or quality rather than the grocery item itself
DESCRIPTOR_WORDS = {
    'chopped', 'diced', 'minced', 'sliced', 'grated', 'shredded', 'crushed',
    'cubed', 'julienned', 'halved', 'quartered', 'sifted', 'softened', 'melted',
    'peeled', 'seeded', 'trimmed', 'pitted', 'rinsed', 'drained', 'divided',
    'fresh', 'freshly', 'organic', 'finely', 'roughly', 'coarsely', 'thinly',
    'large', 'medium', 'small', 'optional',
}

DESCRIPTOR_PHRASES = ['to taste', 'as needed', 'for garnish', 'for serving', 'room temperature']

_UNICODE_FRACTIONS = {
    '½': ' 1/2', '⅓': ' 1/3', '⅔': ' 2/3', '¼': ' 1/4', '¾': ' 3/4',
    '⅕': ' 1/5', '⅛': ' 1/8', '⅜': ' 3/8', '⅝': ' 5/8', '⅞': ' 7/8',
}

_NUMBER = r'\d+\s+\d+/\d+|\d+/\d+|\d+(?:\.\d+)?'
_QUANTITY_RE = re.compile(
    rf'^(?P<low>{_NUMBER})(?:\s*(?:-|–|to)\s*(?P<high>{_NUMBER}))?\s*'
)
_UNIT_RE = re.compile(r'^([a-z]+)\.?(?=[\s,]|$)')
_PHRASE_RES = [re.compile(rf'\b{re.escape(phrase)}\b') for phrase in DESCRIPTOR_PHRASES]


def parse_ingredient(line: str) -> ParsedIngredient:
    """
    Parse one ingredient line into quantity, unit and item name.

    Ranges ("2-3", "2 to 3") resolve to the lower bound. A unit is only
    recognized immediately after the quantity; any other leading word stays
    part of the item name ("3 cloves garlic" -> name "cloves garlic").

    Examples:
        "2 cups flour, sifted" -> quantity=2.0, unit="cup", item_name="flour"
        "1 1/2 lbs ground beef" -> quantity=1.5, unit="lb", item_name="ground beef"
        "salt to taste" -> quantity=None, unit=None, item_name="salt"
    """
    if line is None:
        line = ""
    original_text = str(line).strip()
    text = original_text.lower()
    for symbol, replacement in _UNICODE_FRACTIONS.items():
        text = text.replace(symbol, replacement)
    text = re.sub(r'\s+', ' ', text).strip()

    quantity, remainder = _split_quantity(text)

    unit = None
    if quantity is not None:
        unit, remainder = _split_unit(remainder)

    item_name, preparation = _clean_name_fragment(remainder)
    if not item_name:
        # Everything was stripped; fall back to the raw remainder, then the whole line
        item_name = _collapse(re.sub(r'[(),]', ' ', remainder)) or _collapse(text)

    parsed = ParsedIngredient(
        item_name=item_name,
        quantity=quantity,
        unit=unit,
        original_text=original_text,
        preparation=preparation
    )
    logger.debug(f"Parsed '{original_text}' -> {parsed.quantity} {parsed.unit} {parsed.item_name}")
    return parsed


def clean_item_name(name: str) -> str:
    """Display form of an item name: duplicate words collapsed, title case"""
    if not name:
        return ""

    seen = set()
    words = []
    for word in re.sub(r'\s+', ' ', str(name)).strip().split(' '):
        key = word.lower()
        if not key or key in seen:
            continue
        seen.add(key)
        words.append('-'.join(part.capitalize() for part in word.split('-')))

    return ' '.join(words)


def canonical_unit(token: Optional[str]) -> Optional[str]:
    """Map a unit spelling to its canonical abbreviation, None if unrecognized"""
    if not token:
        return None
    return _UNIT_LOOKUP.get(token.lower().rstrip('.'))


def _split_quantity(text: str) -> Tuple[Optional[float], str]:
    """Split a leading quantity off the text"""
    match = _QUANTITY_RE.match(text)
    if not match:
        return None, text

    try:
        quantity = _to_number(match.group('low'))
    except (ValueError, ZeroDivisionError):
        return None, text

    return quantity, text[match.end():].strip()


def _to_number(text: str) -> float:
    text = text.strip()
    if ' ' in text:
        whole, fraction = text.split(None, 1)
        return float(whole) + _to_number(fraction)
    if '/' in text:
        numerator, denominator = text.split('/')
        return float(numerator) / float(denominator)
    return float(text)


def _split_unit(text: str) -> Tuple[Optional[str], str]:
    """Split a recognized unit token off the start of the text"""
    match = _UNIT_RE.match(text)
    if not match:
        return None, text

    unit = canonical_unit(match.group(1))
    if unit is None:
        return None, text

    return unit, text[match.end():].strip()


def _clean_name_fragment(text: str) -> Tuple[str, str]:
    """Strip asides and descriptors; returns (item_name, preparation)"""
    preparations = [aside.strip() for aside in re.findall(r'\(([^)]*)\)', text) if aside.strip()]
    text = re.sub(r'\([^)]*\)', ' ', text)

    if ',' in text:
        text, prep = text.split(',', 1)
        if prep.strip(' ,'):
            preparations.append(prep.strip(' ,'))

    text = re.sub(r'^of\s+', '', text.strip())
    for phrase_re in _PHRASE_RES:
        text = phrase_re.sub(' ', text)

    words = [word for word in text.split() if word.strip('.-') not in DESCRIPTOR_WORDS]
    name = _collapse(' '.join(words)).strip(' .-')

    return name, ', '.join(preparations)


def _collapse(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()
