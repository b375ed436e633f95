# Quantity / Variant / Extras Extractor for order-core
# Works on a window around a matched span; pattern tables are ordered, first match wins

import logging
import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

WINDOW = 80

NUMBER_WORDS = {
    # es
    'cero': 0, 'uno': 1, 'una': 1, 'un': 1, 'dos': 2, 'tres': 3, 'cuatro': 4, 'cinco': 5,
    'seis': 6, 'siete': 7, 'ocho': 8, 'nueve': 9, 'diez': 10, 'once': 11,
    'doce': 12, 'trece': 13, 'catorce': 14, 'quince': 15, 'dieciseis': 16,
    'diecisiete': 17, 'dieciocho': 18, 'diecinueve': 19, 'veinte': 20,
    'veintiuno': 21, 'veintidos': 22, 'treinta': 30, 'cuarenta': 40,
    'media docena': 6, 'docena': 12,
    # en
    'one': 1, 'two': 2, 'three': 3, 'four': 4, 'five': 5, 'six': 6,
    'seven': 7, 'eight': 8, 'nine': 9, 'ten': 10,
}

_NUMBER_WORD_ALT = '|'.join(re.escape(w) for w in sorted(NUMBER_WORDS, key=len, reverse=True))
_UNIT_WORDS = r'(?:unidades|unidad|unds|und|uds|ud|piezas|pieza|pzs|pz|porciones|porcion)'

# Words that start a new order line; quantities never cross them
CONJUNCTION_RE = re.compile(r'\b(?:y|e|and|tambien|ademas|mas|plus)\b')

# (kind, segment, pattern): segment 'before' is the text leading up to the
# span, 'after' the text following it. Order is priority.
QUANTITY_PATTERNS: List[Tuple[str, str, 're.Pattern']] = [
    ('multiplier', 'before', re.compile(r'(\d{1,3})\s*x\s*(?:de\s+)?$')),
    ('multiplier', 'after', re.compile(r'^[a-z]{0,2}\s*x\s*(\d{1,3})\b')),
    ('unit', 'before', re.compile(r'(\d{1,3})\s*' + _UNIT_WORDS + r'\s+(?:de\s+)?$')),
    ('unit', 'after', re.compile(r'^[a-z]{0,2}\s+(\d{1,3})\s*' + _UNIT_WORDS + r'\b')),
    ('leading_digit', 'before', re.compile(r'(?<![\d])(\d{1,3})\s*(?:de\s+)?$')),
    ('number_word', 'before', re.compile(r'\b(' + _NUMBER_WORD_ALT + r')\s+(?:de\s+)?(?:[a-z]+\s+){0,3}$')),
    ('nearby_digit', 'before', re.compile(r'(?<![\d])(\d{1,3})\s+(?:[a-z]+\s+){1,3}$')),
]

# Size keyword -> canonical variant key. Order is priority.
SIZE_KEYWORDS: List[Tuple[str, str]] = [
    ('pequena', 'pequena'),
    ('small', 'pequena'),
    ('personal', 'personal'),
    ('mediana', 'mediana'),
    ('medium', 'mediana'),
    ('familiar', 'familiar'),
    ('large', 'familiar'),
    ('grande', 'grande'),
    # abbreviations
    ('med', 'mediana'),
    ('fam', 'familiar'),
    ('pers', 'personal'),
]

_SIZE_PATTERNS = [
    (re.compile(r'\b' + keyword + r'(?:s|es)?\b'), variant) for keyword, variant in SIZE_KEYWORDS
]

EXTRA_KINDS = {
    'con': 'with', 'with': 'with',
    'sin': 'without', 'without': 'without',
    'mas': 'add', 'más': 'add', 'agregue': 'add', 'agregar': 'add', 'agregale': 'add',
    'add': 'add', 'extra': 'add',
}

# Keyword plus a lookahead capture so consecutive modifiers are all found
_EXTRA_RE = re.compile(
    r'\b(con|with|sin|without|m[aá]s|agregue|agregar|agregale|add|extra)\s+(?=([^\n,.;:!?]{1,80}))',
    re.IGNORECASE,
)
_EXTRA_STOP_RE = re.compile(
    r'\b(?:y|and|e|pero|con|sin|with|without|m[aá]s|agregue|agregar|extra)\b', re.IGNORECASE
)


@dataclass(frozen=True)
class Extra:
    """A with/without/add modifier phrase found in the message"""
    phrase: str
    kind: str
    offset: int

    def to_dict(self) -> Dict:
        return asdict(self)


def _segments(text: str, start: int, end: int,
              floor: Optional[int] = None, ceiling: Optional[int] = None) -> Tuple[str, str]:
    """Text before/after the span, limited to WINDOW, neighbouring spans and conjunctions"""
    lo = max(0, start - WINDOW)
    if floor is not None:
        lo = max(lo, floor)
    hi = min(len(text), end + WINDOW)
    if ceiling is not None:
        hi = min(hi, ceiling)
    before = text[lo:start] if lo < start else ''
    after = text[end:hi] if end < hi else ''

    last = None
    for last in CONJUNCTION_RE.finditer(before):
        pass
    if last is not None:
        before = before[last.end():]
    cut = CONJUNCTION_RE.search(after)
    if cut:
        after = after[:cut.start()]
    return before, after


def extract_quantity(text: str, start: int, end: int,
                     floor: Optional[int] = None, ceiling: Optional[int] = None) -> Optional[int]:
    """
    Quantity for the span text[start:end], or None when nothing is stated.
    Expects normalized text. Never raises.
    """
    if not text or start < 0 or end < start:
        return None
    before, after = _segments(text, start, end, floor, ceiling)
    segments = {'before': before, 'after': after}
    for kind, segment, pattern in QUANTITY_PATTERNS:
        m = pattern.search(segments[segment])
        if not m:
            continue
        token = m.group(1)
        if token.isdigit():
            value = int(token)
        else:
            value = NUMBER_WORDS.get(token)
        if value is not None:
            logger.debug("Quantity %d from %s pattern (%s)", value, kind, segment)
            return value
    return None


def extract_variant(text: str, start: int, end: int,
                    floor: Optional[int] = None, ceiling: Optional[int] = None) -> Optional[str]:
    """Size keyword near the span (excluding the span itself)."""
    if not text or start < 0 or end < start:
        return None
    before, after = _segments(text, start, end, floor, ceiling)
    window = f"{before} {after}"
    for pattern, variant in _SIZE_PATTERNS:
        if pattern.search(window):
            return variant
    return None


def _clean_phrase(phrase: str) -> str:
    stop = _EXTRA_STOP_RE.search(phrase)
    if stop:
        phrase = phrase[:stop.start()]
    return ' '.join(phrase.split()).strip(' -/').lower()


def extract_extras(raw_text: str) -> List[Extra]:
    """
    All con/sin/mas/agregue (with/without/add) phrases in message order,
    e.g. "sin cebolla". Duplicates are dropped, first occurrence kept.
    """
    if not raw_text or not isinstance(raw_text, str):
        return []
    extras: List[Extra] = []
    seen = set()
    for m in _EXTRA_RE.finditer(raw_text):
        keyword = m.group(1).lower()
        phrase = _clean_phrase(m.group(2))
        if not phrase or phrase[0].isdigit():
            continue
        full = f"{keyword} {phrase}"
        if full in seen:
            continue
        seen.add(full)
        extras.append(Extra(phrase=full, kind=EXTRA_KINDS.get(keyword, 'add'), offset=m.start()))
    return extras
