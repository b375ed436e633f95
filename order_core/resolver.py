# Order Resolver for order-core
# Free text -> priced catalog items: synonym, exact, fuzzy, then generic keyword matching

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .cache import MetricsCollector, TTLCache
from .catalog import (AliasMap, AmbiguousAlias, CatalogProduct, build_alias_map,
                      catalog_fingerprint, flatten_catalog, round_money)
from .config import ResolverOptions
from .errors import OrderCoreError, ProcessingError, ValidationError
from .extractor import Extra, extract_extras, extract_quantity, extract_variant
from .normalizer import normalize
from .similarity import jaro_winkler, similarity_score

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 5000
MAX_QUANTITY = 100
LOW_CONFIDENCE = 0.6
SPAN_TOKEN_MIN_SIMILARITY = 0.85
SPAN_TOKEN_MIN_LENGTH = 3

CONFIDENCE_SYNONYM = 0.95
CONFIDENCE_UNMAPPED_SYNONYM = 0.6
CONFIDENCE_EXACT = 0.98
CONFIDENCE_GENERIC_PRODUCT = 0.6
CONFIDENCE_GENERIC_PLACEHOLDER = 0.4

GENERIC_KEYWORDS = [
    'pizza', 'alitas', 'lasagna', 'lasana', 'burger', 'hamburguesa',
    'salchipapa', 'choripan', 'tequenos', 'crispy', 'combo',
]

WARNINGS = {
    'es': {
        'no_text': 'No se recibió texto',
        'empty_catalog': 'El catálogo está vacío',
        'low_confidence': 'Posible ambigüedad para "{name}" (confianza {confidence:.2f})',
        'ambiguous': 'Alias con múltiples coincidencias para "{name}": {candidates}',
        'unmapped': 'El alias "{alias}" apunta a "{product_id}", que no está en el catálogo',
        'no_price': 'Sin precio para "{name}"',
        'generic': 'No se pudo identificar el producto exacto para "{name}"',
    },
    'en': {
        'no_text': 'No text provided',
        'empty_catalog': 'Empty catalog provided',
        'low_confidence': 'Possible ambiguity for "{name}" (confidence {confidence:.2f})',
        'ambiguous': 'Alias with multiple matches for "{name}": {candidates}',
        'unmapped': 'Alias "{alias}" points to "{product_id}", which is not in the catalog',
        'no_price': 'No price for "{name}"',
        'generic': 'Could not fully identify the product for "{name}"',
    },
}


def clamp_confidence(value: Any) -> float:
    try:
        c = float(value)
    except (TypeError, ValueError):
        return 0.5
    if c != c:  # NaN
        return 0.5
    return max(0.0, min(1.0, c))


def clamp_quantity(value: Any) -> int:
    try:
        q = int(value)
    except (TypeError, ValueError):
        return 1
    if q < 1 or q > MAX_QUANTITY:
        validated = max(1, min(MAX_QUANTITY, q))
        logger.warning("Quantity %d out of range, using %d", q, validated)
        return validated
    return q


@dataclass
class ResolvedItem:
    """One order line resolved against the catalog"""
    product_id: str
    display_name: str
    quantity: int = 1
    variant: Optional[str] = None
    extras: List[str] = field(default_factory=list)
    unit_price: Optional[float] = None
    line_total: Optional[float] = None
    confidence: float = 1.0
    match_evidence: List[Dict[str, Any]] = field(default_factory=list)
    candidate_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ResolvedOrder:
    items: List[ResolvedItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    extras_detected: List[str] = field(default_factory=list)
    diagnostics: Optional[Dict[str, Any]] = None

    @property
    def total(self) -> Optional[float]:
        known = [item.line_total for item in self.items if item.line_total is not None]
        return round_money(sum(known)) if known else None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'items': [item.to_dict() for item in self.items],
            'warnings': list(self.warnings),
            'extras_detected': list(self.extras_detected),
        }
        if self.diagnostics is not None:
            payload['diagnostics'] = self.diagnostics
        return payload


@dataclass
class _Match:
    product: Optional[CatalogProduct]
    product_id: str
    name: str
    start: int
    end: int
    method: str
    confidence: float
    evidence: Dict[str, Any]
    candidate_ids: List[str] = field(default_factory=list)


class SpanClaims:
    """Character ranges of the normalized text already taken by a match"""

    def __init__(self):
        self.spans: List[Tuple[int, int]] = []

    def overlaps(self, start: int, end: int) -> bool:
        return any(start < e and s < end for s, e in self.spans)

    def claim(self, start: int, end: int) -> bool:
        if self.overlaps(start, end):
            return False
        self.spans.append((start, end))
        return True


def _occurrences(text: str, phrase: str) -> List[Tuple[int, int]]:
    """Whole-word occurrences of phrase (plural suffix allowed)"""
    if not phrase:
        return []
    pattern = re.compile(r'(?<!\w)' + re.escape(phrase) + r'(?:s|es)?(?!\w)')
    return [(m.start(), m.end()) for m in pattern.finditer(text)]


def _token_positions(text: str) -> List[Tuple[str, int, int]]:
    return [(m.group(0), m.start(), m.end()) for m in re.finditer(r'\S+', text)]


def _locate_fuzzy_span(tokens: List[Tuple[str, int, int]], product: CatalogProduct,
                       claims: SpanClaims) -> Optional[Tuple[int, int]]:
    """First unclaimed message token equal to a product token, else the closest one"""
    wanted = [t for t in product.tokens if len(t) >= SPAN_TOKEN_MIN_LENGTH]
    if not wanted:
        return None
    for token, start, end in tokens:
        if token in wanted and not claims.overlaps(start, end):
            return start, end
    best = None
    for token, start, end in tokens:
        if len(token) < SPAN_TOKEN_MIN_LENGTH or claims.overlaps(start, end):
            continue
        score = max(jaro_winkler(token, w) for w in wanted)
        if score >= SPAN_TOKEN_MIN_SIMILARITY and (best is None or score > best[0]):
            best = (score, start, end)
    return (best[1], best[2]) if best else None


class OrderResolver:
    """
    Resolves a customer message against a catalog. Cache and metrics are
    optional collaborators; the resolver itself keeps no per-call state.
    """

    def __init__(self, options: Optional[ResolverOptions] = None,
                 cache: Optional[TTLCache] = None,
                 metrics: Optional[MetricsCollector] = None):
        if options is not None and not isinstance(options, ResolverOptions):
            raise ValidationError("options must be a ResolverOptions",
                                  {'field': 'options', 'type': type(options).__name__})
        self.options = options or ResolverOptions()
        self.cache = cache
        self.metrics = metrics

    def _record(self, name: str, value: float = 1) -> None:
        if self.metrics is not None:
            self.metrics.record(name, value)

    def _msg(self, key: str, **kwargs) -> str:
        return WARNINGS[self.options.language][key].format(**kwargs)

    @staticmethod
    def _validate(text: Any, catalog: Any) -> str:
        if not isinstance(text, str):
            raise ValidationError("Text must be a string", {'field': 'text', 'type': type(text).__name__})
        if len(text) > MAX_TEXT_LENGTH:
            raise ValidationError(f"Text exceeds maximum length of {MAX_TEXT_LENGTH} characters",
                                  {'field': 'text', 'length': len(text)})
        if catalog is None:
            raise ValidationError("Catalog or menu is required", {'field': 'catalog'})
        if not isinstance(catalog, (list, tuple, dict)):
            raise ValidationError("Catalog must be a list or an object with categorias",
                                  {'field': 'catalog', 'type': type(catalog).__name__})
        return text.replace('<', '').replace('>', '').strip()

    def resolve(self, text: str, catalog: Any, synonyms: Optional[Dict[str, Any]] = None) -> ResolvedOrder:
        """Resolve text into a ResolvedOrder. Raises ValidationError or ProcessingError."""
        started = time.perf_counter()
        self._record('resolve.calls')
        raw = self._validate(text, catalog)
        try:
            result = self._resolve(raw, catalog, synonyms)
        except OrderCoreError:
            self._record('resolve.validation_error')
            raise
        except Exception as e:
            logger.exception("Unexpected error resolving order text")
            self._record('resolve.error')
            raise ProcessingError(f"Failed to resolve order text: {e}", cause=e) from e
        duration_ms = (time.perf_counter() - started) * 1000
        self._record('resolve.duration_ms', duration_ms)
        logger.info("Resolved %d item(s), %d warning(s) in %.1fms",
                    len(result.items), len(result.warnings), duration_ms)
        return result

    def _resolve(self, raw: str, catalog: Any, synonyms: Optional[Dict[str, Any]]) -> ResolvedOrder:
        debug = self.options.debug
        normalized = normalize(raw)
        if not normalized:
            logger.warning("Empty or whitespace-only text provided")
            self._record('resolve.empty')
            return ResolvedOrder(warnings=[self._msg('no_text')],
                                 diagnostics={'steps': ['Empty text']} if debug else None)

        cache_key = None
        if self.cache is not None and not debug:
            cache_key = (raw, catalog_fingerprint(catalog, synonyms), self.options.fingerprint())
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Cache hit for %d-char message", len(raw))
                self._record('resolve.cache_hit')
                return cached
            self._record('resolve.cache_miss')

        diagnostics: Dict[str, Any] = {'steps': [], 'raw_matches': []}
        extras = extract_extras(raw)
        extras_detected = [e.phrase for e in extras]

        products = flatten_catalog(catalog)
        diagnostics['steps'].append(f"Catalog flattened: {len(products)} products")
        if not products:
            logger.warning("Empty catalog provided")
            self._record('resolve.empty_catalog')
            return ResolvedOrder(warnings=[self._msg('empty_catalog')], extras_detected=extras_detected,
                                 diagnostics=diagnostics if debug else None)

        alias_map = build_alias_map(synonyms)
        diagnostics['steps'].append(f"Alias map entries: {len(alias_map)}")

        claims = SpanClaims()
        matched_ids = set()
        matches: List[_Match] = []
        warnings: List[str] = []

        matches += self._match_aliases(normalized, alias_map, products, claims, matched_ids, warnings)
        matches += self._match_exact(normalized, products, claims, matched_ids)
        if self.options.allow_fuzzy:
            matches += self._match_fuzzy(normalized, products, claims, matched_ids)
        if not matches:
            matches += self._match_generic(normalized, products, claims)
            self._record('resolve.fallback_used')
        for m in matches:
            diagnostics['raw_matches'].append(dict(m.evidence))

        raw_items = self._build_items(raw, normalized, matches, extras)
        items = self._merge(raw_items)
        by_id = {m.product_id: m.product for m in matches}
        for item in items:
            self._price(item, by_id.get(item.product_id))
        warnings += self._warnings(items)

        if debug:
            diagnostics['tokens'] = normalized.split()
            diagnostics['items_raw'] = [i.to_dict() for i in raw_items]
            diagnostics['extras'] = [e.to_dict() for e in extras]

        result = ResolvedOrder(items=items, warnings=warnings, extras_detected=extras_detected,
                               diagnostics=diagnostics if debug else None)
        self._record('resolve.items_found', len(items))
        if cache_key is not None:
            self.cache.set(cache_key, result)
        return result

    # -----------------------------
    # Matching stages
    # -----------------------------

    def _match_aliases(self, normalized: str, alias_map: AliasMap, products: List[CatalogProduct],
                       claims: SpanClaims, matched_ids: set, warnings: List[str]) -> List[_Match]:
        index: Dict[str, CatalogProduct] = {}
        for p in products:
            index.setdefault(p.id, p)
            sku = p.raw.get('sku')
            if sku:
                index.setdefault(str(sku), p)

        results = []
        for alias, entry in alias_map.by_length():
            for start, end in _occurrences(normalized, alias):
                if not claims.claim(start, end):
                    continue
                ids = list(entry.candidate_ids)
                product = next((index[pid] for pid in ids if pid in index), None)
                if product is None:
                    logger.warning("Synonym alias '%s' not mapped to a catalog product: %s", alias, ids)
                    warnings.append(self._msg('unmapped', alias=alias, product_id=ids[0]))
                product_id = product.id if product else ids[0]
                results.append(_Match(
                    product=product,
                    product_id=product_id,
                    name=product.name if product else product_id,
                    start=start, end=end,
                    method='synonym',
                    confidence=CONFIDENCE_SYNONYM if product else CONFIDENCE_UNMAPPED_SYNONYM,
                    evidence={'method': 'synonym', 'alias': alias, 'start': start, 'end': end},
                    candidate_ids=ids if isinstance(entry, AmbiguousAlias) else [],
                ))
                if product:
                    matched_ids.add(product.id)
        logger.debug("Synonym matches: %d", len(results))
        self._record('resolve.synonym_matches', len(results))
        return results

    def _match_exact(self, normalized: str, products: List[CatalogProduct],
                     claims: SpanClaims, matched_ids: set) -> List[_Match]:
        results = []
        # longer names first so "pizza" cannot take the span of "pizza hawaiana"
        for product in sorted(products, key=lambda p: -len(p.normalized_name)):
            if not product.normalized_name or product.id in matched_ids:
                continue
            for start, end in _occurrences(normalized, product.normalized_name):
                if not claims.claim(start, end):
                    continue
                results.append(_Match(
                    product=product, product_id=product.id, name=product.name,
                    start=start, end=end, method='exact_name', confidence=CONFIDENCE_EXACT,
                    evidence={'method': 'exact_name', 'matched': product.normalized_name,
                              'start': start, 'end': end},
                ))
                matched_ids.add(product.id)
        logger.debug("Exact matches: %d", len(results))
        self._record('resolve.exact_matches', len(results))
        return results

    def _match_fuzzy(self, normalized: str, products: List[CatalogProduct],
                     claims: SpanClaims, matched_ids: set) -> List[_Match]:
        threshold = self.options.fuzzy_threshold
        tokens = _token_positions(normalized)
        message_tokens = [t for t, _, _ in tokens]

        candidates = []
        for product in products:
            if not product.normalized_name or product.id in matched_ids:
                continue
            score = similarity_score(message_tokens, product.normalized_name)
            if score >= threshold:
                candidates.append((score, product))
        candidates.sort(key=lambda c: c[0], reverse=True)

        results = []
        for score, product in candidates:
            span = _locate_fuzzy_span(tokens, product, claims)
            if span is None or not claims.claim(*span):
                logger.debug("Fuzzy candidate '%s' (%.2f) has no free span", product.name, score)
                continue
            confidence = round(clamp_confidence(score), 2)
            logger.debug("Fuzzy match '%s' score=%.2f", product.name, score)
            results.append(_Match(
                product=product, product_id=product.id, name=product.name,
                start=span[0], end=span[1], method='fuzzy', confidence=confidence,
                evidence={'method': 'fuzzy', 'score': confidence, 'matched_tokens': list(product.tokens),
                          'start': span[0], 'end': span[1]},
            ))
            matched_ids.add(product.id)
        self._record('resolve.fuzzy_matches', len(results))
        return results

    def _match_generic(self, normalized: str, products: List[CatalogProduct],
                       claims: SpanClaims) -> List[_Match]:
        results = []
        for keyword in GENERIC_KEYWORDS:
            found = _occurrences(normalized, keyword)
            if not found:
                continue
            start, end = found[0]
            if not claims.claim(start, end):
                continue
            product = next((p for p in products if keyword in p.normalized_name), None)
            evidence = {'method': 'fallback_generic', 'keyword': keyword, 'start': start, 'end': end}
            if product:
                logger.debug("Generic keyword '%s' bound to '%s'", keyword, product.name)
                results.append(_Match(product=product, product_id=product.id, name=product.name,
                                      start=start, end=end, method='fallback_generic',
                                      confidence=CONFIDENCE_GENERIC_PRODUCT, evidence=evidence))
            else:
                logger.warning("Generic keyword '%s' not matched to any product", keyword)
                results.append(_Match(product=None, product_id=keyword, name=keyword,
                                      start=start, end=end, method='fallback_generic',
                                      confidence=CONFIDENCE_GENERIC_PLACEHOLDER, evidence=evidence))
        return results

    # -----------------------------
    # Post-processing
    # -----------------------------

    @staticmethod
    def _build_items(raw: str, normalized: str, matches: List[_Match],
                     extras: List[Extra]) -> List[ResolvedItem]:
        ordered = sorted(matches, key=lambda m: m.start)

        # each extra goes to the closest match starting before it
        bound: Dict[int, List[str]] = {i: [] for i in range(len(ordered))}
        for extra in extras:
            offset = len(normalize(raw[:extra.offset]))
            owner = 0
            for i, m in enumerate(ordered):
                if m.start <= offset:
                    owner = i
            if ordered:
                bound[owner].append(extra.phrase)

        items = []
        for i, m in enumerate(ordered):
            floor = ordered[i - 1].end if i > 0 else None
            ceiling = ordered[i + 1].start if i + 1 < len(ordered) else None
            quantity = extract_quantity(normalized, m.start, m.end, floor, ceiling)
            variant = None
            if m.product is not None or m.method != 'fallback_generic':
                variant = extract_variant(normalized, m.start, m.end, floor, ceiling)
            items.append(ResolvedItem(
                product_id=m.product_id,
                display_name=m.name,
                quantity=clamp_quantity(quantity if quantity is not None else 1),
                variant=variant,
                extras=bound[i],
                confidence=clamp_confidence(m.confidence),
                match_evidence=[dict(m.evidence)],
                candidate_ids=list(m.candidate_ids),
            ))
        return items

    @staticmethod
    def _merge(raw_items: List[ResolvedItem]) -> List[ResolvedItem]:
        """Same (product_id, variant) -> one item; quantities add up"""
        merged: Dict[Tuple[str, Optional[str]], ResolvedItem] = {}
        for item in raw_items:
            key = (item.product_id, item.variant)
            existing = merged.get(key)
            if existing is None:
                merged[key] = ResolvedItem(
                    product_id=item.product_id, display_name=item.display_name,
                    quantity=item.quantity, variant=item.variant,
                    extras=sorted(set(item.extras)), confidence=item.confidence,
                    match_evidence=list(item.match_evidence), candidate_ids=list(item.candidate_ids),
                )
                continue
            existing.quantity = clamp_quantity(existing.quantity + item.quantity)
            existing.extras = sorted(set(existing.extras + item.extras))
            existing.confidence = max(existing.confidence, item.confidence)
            existing.match_evidence.extend(item.match_evidence)
            existing.candidate_ids = list(dict.fromkeys(existing.candidate_ids + item.candidate_ids))
        return list(merged.values())

    @staticmethod
    def _price(item: ResolvedItem, product: Optional[CatalogProduct]) -> None:
        if product is None:
            return
        unit = product.price_for(item.variant)
        if unit is None:
            return
        item.unit_price = unit
        item.line_total = round_money(unit * item.quantity)

    def _warnings(self, items: List[ResolvedItem]) -> List[str]:
        warnings = []
        for item in items:
            if item.confidence < LOW_CONFIDENCE:
                warnings.append(self._msg('low_confidence', name=item.display_name, confidence=item.confidence))
                logger.warning("Low confidence match '%s' (%.2f)", item.display_name, item.confidence)
                self._record('resolve.low_confidence')
            if len(item.candidate_ids) > 1:
                warnings.append(self._msg('ambiguous', name=item.display_name,
                                          candidates=', '.join(item.candidate_ids)))
                logger.warning("Ambiguous synonym for '%s': %s", item.display_name, item.candidate_ids)
                self._record('resolve.ambiguous_synonym')
            if any(e.get('method') == 'fallback_generic' for e in item.match_evidence):
                warnings.append(self._msg('generic', name=item.display_name))
            if item.unit_price is None:
                warnings.append(self._msg('no_price', name=item.display_name))
        return warnings


def resolve_order(text: str, catalog: Any, synonyms: Optional[Dict[str, Any]] = None,
                  options: Optional[ResolverOptions] = None) -> ResolvedOrder:
    """One-shot resolution without cache or metrics"""
    return OrderResolver(options).resolve(text, catalog, synonyms)
