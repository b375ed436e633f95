# Amount / Number Extractor for order-core
# Scans OCR text of payment receipts for money amounts, operation and account numbers

import logging
import re
from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import OrderCoreError, ProcessingError, ValidationError

logger = logging.getLogger(__name__)

MAX_OCR_TEXT_LENGTH = 10000
CONTEXT_CHARS = 40
LARGE_AMOUNT = 50

TOTAL_KEYWORDS_RE = re.compile(r'total|importe|monto|pagado|saldo', re.IGNORECASE)
SUBTOTAL_RE = re.compile(r'subtotal|sub total', re.IGNORECASE)

# Thousands-grouped or plain number, optional 1-2 decimals
_NUM = r'(\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?|\d{1,6}(?:[.,]\d{1,2})?)(?!\d)'

# (pattern, currency hint), in priority order; group 1 is always the number.
# Bare numbers must not touch other digits, dates (15/02) or times (10:30).
# Bare integers stay shorter than operation numbers and skip space-grouped
# digits such as phone numbers (987 654 321).
AMOUNT_PATTERNS: List[Tuple['re.Pattern', Optional[str]]] = [
    (re.compile(r'(?<![A-Za-z])[Ss]/\.?\s*' + _NUM), 'PEN'),
    (re.compile(r'\bPEN\.?\s*' + _NUM, re.IGNORECASE), 'PEN'),
    (re.compile(r'(?:US\$|\$|\bUSD)\s*' + _NUM, re.IGNORECASE), 'USD'),
    (re.compile(r'(?<![\d.,])' + _NUM + r'\s*soles\b', re.IGNORECASE), 'PEN'),
    (re.compile(r'(?<![\d.,/:-])(\d{1,3}(?:[.,]\d{3})*[.,]\d{2}|\d{1,6}[.,]\d{2})(?![\d/:-]|[.,]\d)'), None),
    (re.compile(r'(?<![\d.,/:-])(?<!\d )(\d{1,5})(?![\d/:-]|[.,]\d| \d)'), None),
]

LONG_NUMBER_RE = re.compile(r'(?<!\d)(\d{6,20})(?!\d)')
ACCOUNT_LENGTHS = range(9, 12)

_DECIMAL_TAIL_RE = re.compile(r'^(.*?)[.,](\d{1,2})$')


def parse_amount(raw: str) -> Optional[float]:
    """'24.00', '24,00', '1,250.00', '1.250,00', '1,250' -> float; None if unparsable."""
    if raw is None:
        return None
    s = re.sub(r'[^\d.,]', '', str(raw))
    if not s:
        return None
    m = _DECIMAL_TAIL_RE.match(s)
    if m:
        s = f"{re.sub(r'[.,]', '', m.group(1)) or '0'}.{m.group(2)}"
    else:
        s = re.sub(r'[.,]', '', s)
    try:
        return float(Decimal(s))
    except InvalidOperation:
        return None


@dataclass(frozen=True)
class DetectedAmount:
    """A money amount found in OCR text"""
    raw_text: str
    value: float
    currency_hint: Optional[str]
    offset: int
    total_likelihood: float = 0.0
    context: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReceiptScan:
    """Everything extracted from one receipt's OCR text"""
    text: str = ''
    amounts: List[DetectedAmount] = field(default_factory=list)
    most_likely_total: Optional[DetectedAmount] = None
    operation_numbers: List[str] = field(default_factory=list)
    account_numbers: List[str] = field(default_factory=list)
    diagnostics: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'text': self.text,
            'amounts': [a.to_dict() for a in self.amounts],
            'most_likely_total': self.most_likely_total.to_dict() if self.most_likely_total else None,
            'operation_numbers': list(self.operation_numbers),
            'account_numbers': list(self.account_numbers),
        }
        if self.diagnostics is not None:
            payload['diagnostics'] = self.diagnostics
        return payload


def clean_ocr_text(text: str) -> str:
    if not text:
        return ''
    cleaned = text.replace('\r', ' ').replace('\t', ' ').replace('\u00a0', ' ')
    return cleaned[:MAX_OCR_TEXT_LENGTH].strip()


def _context(text: str, offset: int) -> str:
    return text[max(0, offset - CONTEXT_CHARS):offset + CONTEXT_CHARS]


def score_amount(value: float, currency_hint: Optional[str], context: str) -> float:
    """Heuristic 0-1 likelihood that an amount is the receipt total"""
    score = 0.5
    if value > LARGE_AMOUNT:
        score += 0.2
    if currency_hint:
        score += 0.15
    if TOTAL_KEYWORDS_RE.search(context):
        score += 0.25
    if SUBTOTAL_RE.search(context):
        score -= 0.15
    return round(max(0.0, min(1.0, score)), 2)


def extract_amounts(text: str) -> List[DetectedAmount]:
    """
    All amounts in the text, scored, largest value first.
    Duplicates (same value at the same offset) keep the first, currency-tagged, hit.
    """
    if not text:
        return []
    found: List[DetectedAmount] = []
    seen = set()
    for pattern, currency in AMOUNT_PATTERNS:
        for m in pattern.finditer(text):
            value = parse_amount(m.group(1))
            if value is None:
                continue
            key = (value, m.start(1))
            if key in seen:
                continue
            seen.add(key)
            context = _context(text, m.start(1))
            found.append(DetectedAmount(
                raw_text=m.group(1),
                value=value,
                currency_hint=currency,
                offset=m.start(1),
                total_likelihood=score_amount(value, currency, context),
                context=context,
            ))
    found.sort(key=lambda a: a.value, reverse=True)
    return found


def extract_numbers(text: str) -> Tuple[List[str], List[str]]:
    """(operation numbers, account numbers): 9-11 digit runs are accounts"""
    operations: List[str] = []
    accounts: List[str] = []
    if not text:
        return operations, accounts
    for m in LONG_NUMBER_RE.finditer(text):
        number = m.group(1)
        target = accounts if len(number) in ACCOUNT_LENGTHS else operations
        if number not in target:
            target.append(number)
    return operations, accounts


def most_likely_total(amounts: List[DetectedAmount]) -> Optional[DetectedAmount]:
    if not amounts:
        return None
    with_keyword = [a for a in amounts if TOTAL_KEYWORDS_RE.search(a.context)]
    if with_keyword:
        return max(with_keyword, key=lambda a: a.total_likelihood + a.value / 1000)
    return max(amounts, key=lambda a: a.value * (a.total_likelihood + 0.5))


def _ocr_text(ocr: Any) -> str:
    if ocr is None:
        return ''
    if isinstance(ocr, str):
        return ocr
    if isinstance(ocr, Mapping):
        text = ocr.get('text')
        if text is None:
            return ''
        if not isinstance(text, str):
            raise ValidationError("OCR result text must be a string",
                                  {'field': 'ocr.text', 'type': type(text).__name__})
        return text
    raise ValidationError("OCR input must be a string or an object with a text field",
                          {'field': 'ocr', 'type': type(ocr).__name__})


def scan_receipt(ocr: Any, debug: bool = False) -> ReceiptScan:
    """
    Structured scan of a receipt. `ocr` is the OCR text or a provider result
    with a `text` field; missing text yields an empty scan.
    """
    text = clean_ocr_text(_ocr_text(ocr))
    try:
        amounts = extract_amounts(text)
        operations, accounts = extract_numbers(text)
        best = most_likely_total(amounts)
    except OrderCoreError:
        raise
    except Exception as e:
        logger.exception("Unexpected error scanning receipt text")
        raise ProcessingError(f"Failed to scan receipt: {e}", cause=e) from e

    scan = ReceiptScan(
        text=text,
        amounts=amounts,
        most_likely_total=best,
        operation_numbers=operations,
        account_numbers=accounts,
    )
    if debug:
        scan.diagnostics = {
            'patterns': len(AMOUNT_PATTERNS),
            'chosen': best.raw_text if best else None,
            'candidates': [(a.raw_text, a.total_likelihood) for a in amounts],
        }
    logger.info("Receipt scan: %d amount(s), total=%s, %d operation(s), %d account(s)",
                len(amounts), best.value if best else None, len(operations), len(accounts))
    return scan


def detect_known_accounts(text: str, known_accounts: Optional[List[str]] = None) -> Dict[str, List[str]]:
    """Account numbers in the text, and those among the merchant's known accounts"""
    if not text or not isinstance(text, str):
        logger.warning("Invalid text provided to detect_known_accounts")
        return {'matches': [], 'matched_known': []}
    known = set(str(a) for a in known_accounts or [])
    _, accounts = extract_numbers(text)
    matched = [a for a in accounts if a in known]
    logger.info("Detected %d account number(s), %d known", len(accounts), len(matched))
    return {'matches': accounts, 'matched_known': matched}
