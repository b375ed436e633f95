# Receipt Reconciler for order-core
# Compares the detected receipt total against the expected order total

import logging
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from .amounts import DetectedAmount, ReceiptScan, scan_receipt
from .catalog import find_product, flatten_catalog, round_money
from .config import ReconcileOptions
from .errors import OrderCoreError, ProcessingError, ValidationError
from .resolver import ResolvedItem, ResolvedOrder

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    MATCH = 'match'
    CLOSE = 'close'
    MISMATCH = 'mismatch'
    DETECTED_ONLY = 'detected_only'
    LOW_CONFIDENCE_DETECTED = 'low_confidence_detected'
    NO_AMOUNT_DETECTED = 'no_amount_detected'


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of checking a payment amount against an order total"""
    ok: bool
    verdict: Verdict
    detected_total: Optional[float] = None
    expected_total: Optional[float] = None
    difference: Optional[float] = None
    relative_difference: Optional[float] = None
    confidence: Optional[float] = None
    notes: Tuple[str, ...] = ()
    diagnostics: Optional[Dict[str, Any]] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload['verdict'] = self.verdict.value
        payload['notes'] = list(self.notes)
        if self.diagnostics is None:
            payload.pop('diagnostics')
        return payload


def _as_number(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number", {'field': name, 'type': type(value).__name__})
    if value < 0:
        raise ValidationError(f"{name} must not be negative", {'field': name, 'value': value})
    return float(value)


def _detected(detected: Any) -> Tuple[Optional[float], Optional[float]]:
    """(value, total likelihood) from a DetectedAmount, a ReceiptScan or a bare number"""
    if detected is None:
        return None, None
    if isinstance(detected, ReceiptScan):
        detected = detected.most_likely_total
        if detected is None:
            return None, None
    if isinstance(detected, DetectedAmount):
        return detected.value, detected.total_likelihood
    # a caller-supplied number is taken at face value
    return _as_number('detected', detected), 1.0


def reconcile(detected: Union[DetectedAmount, ReceiptScan, float, None],
              expected_total: Optional[float],
              options: Optional[ReconcileOptions] = None) -> ReconciliationResult:
    """
    Verdict for a detected amount against the expected total.
    Never raises for a missing amount; that is the no_amount_detected verdict.
    """
    if options is not None and not isinstance(options, ReconcileOptions):
        raise ValidationError("options must be a ReconcileOptions",
                              {'field': 'options', 'type': type(options).__name__})
    options = options or ReconcileOptions()
    value, confidence = _detected(detected)
    expected = _as_number('expected_total', expected_total)

    if value is None:
        logger.info("Reconciliation: no amount detected")
        return ReconciliationResult(
            ok=False, verdict=Verdict.NO_AMOUNT_DETECTED, expected_total=expected,
            notes=('No payment amount could be detected on the receipt',),
        )

    if expected is None:
        if confidence is not None and confidence >= options.confidence_minimum:
            verdict, note = Verdict.DETECTED_ONLY, 'Amount detected, no expected total to compare'
        else:
            verdict, note = Verdict.LOW_CONFIDENCE_DETECTED, 'Amount detected with low confidence'
        notes = (note, 'Exact match required') if options.require_exact_match else (note,)
        logger.info("Reconciliation: %s (detected=%.2f, confidence=%s)", verdict.value, value, confidence)
        return ReconciliationResult(ok=not options.require_exact_match, verdict=verdict, detected_total=value,
                                    confidence=confidence, notes=notes)

    difference = round_money(value - expected)
    relative = abs(difference) / expected if expected > 0 else None
    notes = []
    if difference == 0:
        verdict = Verdict.MATCH
    elif relative is not None and relative <= options.tolerance:
        verdict = Verdict.CLOSE
        notes.append(f"Within tolerance ({relative:.2%} <= {options.tolerance:.2%})")
    else:
        verdict = Verdict.MISMATCH
        notes.append(f"Difference of {difference:+.2f} against expected {expected:.2f}")

    if options.require_exact_match and verdict == Verdict.CLOSE:
        verdict = Verdict.MISMATCH
        notes.append('Exact match required')
    ok = verdict == Verdict.MATCH if options.require_exact_match else verdict in (Verdict.MATCH, Verdict.CLOSE)
    if confidence is not None and confidence < options.confidence_minimum:
        notes.append(f"Detected amount has low confidence ({confidence:.2f})")

    diagnostics = None
    if options.debug:
        diagnostics = {'options': options.to_dict(), 'raw_difference': value - expected}
    logger.info("Reconciliation: %s (detected=%.2f, expected=%.2f, diff=%+.2f)",
                verdict.value, value, expected, difference)
    return ReconciliationResult(
        ok=ok, verdict=verdict, detected_total=value, expected_total=expected,
        difference=difference, relative_difference=relative,
        confidence=confidence, notes=tuple(notes), diagnostics=diagnostics,
    )


def _line_amount(item: Any, products) -> Optional[float]:
    if isinstance(item, ResolvedItem):
        item = item.to_dict()
    if not isinstance(item, dict):
        return None
    quantity = item.get('quantity', item.get('cantidad', 1)) or 1
    for key in ('line_total', 'lineTotal', 'subtotal'):
        if isinstance(item.get(key), (int, float)) and not isinstance(item.get(key), bool):
            return float(item[key])
    for key in ('unit_price', 'unitPrice', 'price', 'precio'):
        if isinstance(item.get(key), (int, float)) and not isinstance(item.get(key), bool):
            return float(item[key]) * quantity
    product_id = item.get('product_id', item.get('productId', item.get('id')))
    if products and product_id is not None:
        product = find_product(products, product_id)
        if product is not None:
            unit = product.price_for(item.get('variant'))
            if unit is not None:
                return unit * quantity
    return None


def expected_total_from_order(order: Any, catalog: Any = None) -> Optional[float]:
    """
    Expected payment for an order: a ResolvedOrder, a bare number, or a dict
    with an expected_total field or an items list. None when nothing is priced.
    """
    if order is None:
        return None
    if isinstance(order, ResolvedOrder):
        return order.total
    if isinstance(order, (int, float)) and not isinstance(order, bool):
        return _as_number('expected_total', order)
    if not isinstance(order, dict):
        raise ValidationError("Order must be a ResolvedOrder, a number or an object",
                              {'field': 'order', 'type': type(order).__name__})

    for key in ('expected_total', 'expectedTotal', 'total'):
        if order.get(key) is not None:
            return _as_number(key, order[key])

    items = order.get('items') or []
    products = flatten_catalog(catalog) if catalog is not None else []
    amounts = [a for a in (_line_amount(item, products) for item in items) if a is not None]
    if len(amounts) < len(items):
        logger.warning("%d of %d order item(s) have no price", len(items) - len(amounts), len(items))
    return round_money(sum(amounts)) if amounts else None


def reconcile_receipt(ocr: Any, order_or_total: Any = None, catalog: Any = None,
                      options: Optional[ReconcileOptions] = None) -> ReconciliationResult:
    """Scan receipt text and reconcile its most likely total against the order"""
    debug = bool(options and options.debug)
    scan = ocr if isinstance(ocr, ReceiptScan) else scan_receipt(ocr, debug=debug)
    try:
        expected = expected_total_from_order(order_or_total, catalog)
    except OrderCoreError:
        raise
    except Exception as e:
        logger.exception("Unexpected error computing expected total")
        raise ProcessingError(f"Failed to compute expected total: {e}", cause=e) from e
    result = reconcile(scan.most_likely_total, expected, options)
    if debug:
        diagnostics = dict(result.diagnostics or {})
        diagnostics['scan'] = scan.to_dict()
        result = replace(result, diagnostics=diagnostics)
    return result
