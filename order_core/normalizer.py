# Text Normalizer for order-core
# Canonical lowercase/ASCII-folded form shared by every matcher

import re
import unicodedata
from typing import List

_NON_ALNUM_RE = re.compile(r'[\W_]+')
_SPACES_RE = re.compile(r'\s+')

# Chat abbreviations / slang, replaced word by word
ABBREVIATIONS = {
    'tbm': 'tambien',
    'tb': 'tambien',
    'tmb': 'tambien',
    'pq': 'porque',
    'xq': 'porque',
    'k': 'que',
    'q': 'que',
    'x2': 'por dos',
    '1': 'uno',
    '2': 'dos',
    '3': 'tres',
    '4': 'cuatro',
    '5': 'cinco',
    '6': 'seis',
    '7': 'siete',
    '8': 'ocho',
    '9': 'nueve',
    '0': 'cero',
    'msg': 'mensaje',
    'sms': 'mensaje',
    'pls': 'por favor',
    'plz': 'por favor',
    'porfa': 'por favor',
    'thx': 'gracias',
    'thanks': 'gracias',
    'ok': 'okay',
}

# Spelling variants of menu vocabulary -> canonical spelling.
# Multi-word keys are listed first so they win over their single-word parts.
WORD_VARIANTS = [
    ('cuatro magos', 'cuatro quesos'),
    ('papas fritas', 'papa frita'),
    ('papa fritas', 'papa frita'),
    ('cheeese', 'cheese'),
    ('choriso', 'chorizo'),
    ('peperoni', 'pepperoni'),
    ('pepperonni', 'pepperoni'),
    ('peperonni', 'pepperoni'),
    ('hawaiiana', 'hawaiana'),
    ('hawayana', 'hawaiana'),
    ('margarita', 'margherita'),
    ('hamburgesa', 'hamburguesa'),
]

_VARIANT_PATTERNS = [
    (re.compile(r'\b' + re.escape(variant) + r'\b'), canonical)
    for variant, canonical in WORD_VARIANTS
]


def remove_diacritics(text: str) -> str:
    """Drop combining marks after NFD decomposition (ñ -> n, á -> a)."""
    if not text or not isinstance(text, str):
        return ''
    decomposed = unicodedata.normalize('NFD', text)
    return ''.join(c for c in decomposed if not unicodedata.combining(c))


def normalize(text) -> str:
    """
    Canonical form: lowercase, no diacritics, non-alphanumerics as spaces,
    single spaces, trimmed. Never raises; anything that is not a string
    normalizes to ''.
    """
    if not text or not isinstance(text, str):
        return ''
    s = remove_diacritics(text.lower())
    s = _NON_ALNUM_RE.sub(' ', s)
    return _SPACES_RE.sub(' ', s).strip()


def tokenize(text) -> List[str]:
    return [t for t in normalize(text).split(' ') if t]


def extreme_normalize(text) -> str:
    """normalize() plus abbreviation expansion and menu spelling canonicalization"""
    normalized = normalize(text)
    if not normalized:
        return ''
    expanded = ' '.join(ABBREVIATIONS.get(word, word) for word in normalized.split(' '))
    for pattern, canonical in _VARIANT_PATTERNS:
        expanded = pattern.sub(canonical, expanded)
    return expanded
