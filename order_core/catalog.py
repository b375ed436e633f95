# Catalog Index & Alias Map for order-core
# Flattens flat or category menus into products and builds the synonym lookup

import hashlib
import json
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .errors import ValidationError
from .normalizer import normalize, tokenize
from .similarity import edit_similarity

logger = logging.getLogger(__name__)

DEFAULT_VARIANT = 'mediana'
SNIPPET_MIN_SCORE = 0.35


def round_money(value: float) -> float:
    """Round to the currency's minor unit (2 decimals, half up)."""
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def _parse_price(value: Any, product_name: str = '') -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(Decimal(str(value).strip().replace(',', '.')))
    except (InvalidOperation, ValueError):
        logger.warning("Invalid price %r for product '%s'", value, product_name)
        return None
    if price < 0:
        logger.warning("Negative price %r for product '%s'", value, product_name)
        return None
    return price


@dataclass(frozen=True)
class CatalogProduct:
    """One sellable product, flattened out of the menu"""
    id: str
    name: str
    normalized_name: str
    tokens: Tuple[str, ...]
    base_price: Optional[float] = None
    variant_prices: Dict[str, float] = field(default_factory=dict)
    modifiers: Tuple[Any, ...] = ()
    category: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def price_for(self, variant: Optional[str] = None) -> Optional[float]:
        """Unit price for a variant; base price when no variant applies."""
        if variant and self.variant_prices:
            key = normalize(variant)
            if key in self.variant_prices:
                return self.variant_prices[key]
            for variant_key, price in self.variant_prices.items():
                if variant_key in key or key in variant_key:
                    return price
            return self.base_price
        if self.base_price is not None:
            return self.base_price
        if self.variant_prices:
            if DEFAULT_VARIANT in self.variant_prices:
                return self.variant_prices[DEFAULT_VARIANT]
            return next(iter(self.variant_prices.values()))
        return None


def _variant_table(raw_variants: Any, product_name: str) -> Dict[str, float]:
    """Accepts {"mediana": 30} or [{"nombre": "Mediana", "precio": 30}, ...]"""
    table: Dict[str, float] = {}
    if not raw_variants:
        return table
    if isinstance(raw_variants, dict):
        pairs = raw_variants.items()
    elif isinstance(raw_variants, list):
        pairs = [
            (v.get('nombre') or v.get('name') or v.get('id'), v.get('precio', v.get('price')))
            for v in raw_variants if isinstance(v, dict)
        ]
    else:
        logger.warning("Unsupported variant table for '%s': %r", product_name, type(raw_variants).__name__)
        return table
    for key, value in pairs:
        key_norm = normalize(str(key)) if key is not None else ''
        price = _parse_price(value, product_name)
        if key_norm and price is not None:
            table[key_norm] = price
    return table


def normalize_product(product: Dict[str, Any], category: Optional[str] = None) -> CatalogProduct:
    if not isinstance(product, dict):
        raise ValidationError("Catalog products must be objects",
                              {'field': 'product', 'type': type(product).__name__})
    name = str(product.get('nombre') or product.get('name') or product.get('title') or '')
    product_id = product.get('id') or product.get('sku') or name
    if not (product.get('id') or product.get('sku')) or not name:
        logger.warning("Product missing id or name: %r", {k: product.get(k) for k in ('id', 'sku', 'nombre', 'name')})

    raw_price = product.get('precio', product.get('price'))
    modifiers = product.get('modificadores') or product.get('modifiers') or []
    return CatalogProduct(
        id=str(product_id),
        name=name,
        normalized_name=normalize(name),
        tokens=tuple(tokenize(name)),
        base_price=_parse_price(raw_price, name),
        variant_prices=_variant_table(product.get('variantes') or product.get('variants'), name),
        modifiers=tuple(modifiers) if isinstance(modifiers, (list, tuple)) else (),
        category=category,
        raw=product,
    )


def flatten_catalog(catalog_or_menu: Union[List, Dict, None]) -> List[CatalogProduct]:
    """
    Flat list of products from either a product list or a
    {"categorias": [{"productos": [...]}]} menu, keeping input order.
    """
    if catalog_or_menu is None:
        return []
    if isinstance(catalog_or_menu, (list, tuple)):
        return [normalize_product(p) for p in catalog_or_menu if p]
    if isinstance(catalog_or_menu, dict):
        categorias = catalog_or_menu.get('categorias')
        if not isinstance(categorias, list):
            raise ValidationError("Menu object must have a categorias array",
                                  {'field': 'catalog.categorias'})
        products = []
        for cat in categorias:
            if not isinstance(cat, dict):
                continue
            category = cat.get('id') or cat.get('nombre') or cat.get('name')
            for p in cat.get('productos') or []:
                if p:
                    products.append(normalize_product(p, str(category) if category else None))
        return products
    raise ValidationError("Catalog must be a list or an object with categorias",
                          {'field': 'catalog', 'type': type(catalog_or_menu).__name__})


def find_product(products: List[CatalogProduct], product_id: Any) -> Optional[CatalogProduct]:
    wanted = str(product_id)
    for product in products:
        if product.id == wanted or str(product.raw.get('sku') or '') == wanted:
            return product
    return None


# -----------------------------
# Alias map
# -----------------------------

@dataclass(frozen=True)
class ResolvedAlias:
    product_id: str

    @property
    def candidate_ids(self) -> Tuple[str, ...]:
        return (self.product_id,)


@dataclass(frozen=True)
class AmbiguousAlias:
    candidate_ids: Tuple[str, ...]


AliasEntry = Union[ResolvedAlias, AmbiguousAlias]


class AliasMap:
    """Normalized alias -> ResolvedAlias | AmbiguousAlias"""

    def __init__(self):
        self.entries: Dict[str, AliasEntry] = {}

    def add(self, alias: str, product_id: Any) -> None:
        alias_norm = normalize(alias)
        if not alias_norm or product_id is None or product_id == '':
            return
        pid = str(product_id)
        existing = self.entries.get(alias_norm)
        if existing is None:
            self.entries[alias_norm] = ResolvedAlias(pid)
        elif pid not in existing.candidate_ids:
            self.entries[alias_norm] = AmbiguousAlias(existing.candidate_ids + (pid,))
            logger.debug("Alias '%s' maps to multiple products: %s",
                         alias_norm, self.entries[alias_norm].candidate_ids)

    def get(self, alias: str) -> Optional[AliasEntry]:
        return self.entries.get(normalize(alias))

    def by_length(self) -> Iterator[Tuple[str, AliasEntry]]:
        """Longest alias first so short aliases never shadow longer ones"""
        for alias in sorted(self.entries, key=lambda a: (-len(a), a)):
            yield alias, self.entries[alias]

    def __contains__(self, alias: str) -> bool:
        return normalize(alias) in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> Dict[str, Union[str, List[str]]]:
        return {
            alias: entry.product_id if isinstance(entry, ResolvedAlias) else list(entry.candidate_ids)
            for alias, entry in self.entries.items()
        }


def build_alias_map(synonyms: Optional[Dict[str, Any]]) -> AliasMap:
    """
    Accepts {product_id: [alias, ...]} and {alias: product_id} shapes (or a
    mix of both) and merges them without losing ambiguity.
    """
    alias_map = AliasMap()
    if not synonyms:
        return alias_map
    if not isinstance(synonyms, dict):
        raise ValidationError("Synonyms must be an object", {'field': 'synonyms', 'type': type(synonyms).__name__})
    for key, value in synonyms.items():
        if isinstance(value, (list, tuple)):
            for alias in value:
                if isinstance(alias, str):
                    alias_map.add(alias, key)
        elif isinstance(value, (str, int)) and not isinstance(value, bool):
            alias_map.add(str(key), value)
        else:
            logger.warning("Ignoring synonym entry %r: unsupported value %r", key, value)
    logger.debug("Built alias map with %d entries", len(alias_map))
    return alias_map


def catalog_fingerprint(catalog_or_menu: Any, synonyms: Any = None) -> str:
    """Content hash of catalog + synonyms; changes whenever either changes"""
    payload = json.dumps([catalog_or_menu, synonyms], sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha1(payload.encode('utf-8')).hexdigest()


# -----------------------------
# Pasted catalog snippets
# -----------------------------

def match_catalog_snippet(text: str, catalog_or_menu: Any) -> List[Dict[str, Any]]:
    """
    Map a snippet copied from the chat catalog ("Pizza Hawaiana Mediana S/35")
    to products, best first.
    """
    if not text or not isinstance(text, str):
        logger.warning("Invalid text provided to match_catalog_snippet")
        return []
    normalized = normalize(text[:1000])
    tokens = set(normalized.split())
    results = []
    for product in flatten_catalog(catalog_or_menu):
        if not product.normalized_name:
            continue
        common = sum(1 for t in product.tokens if t in tokens)
        coverage = common / len(product.tokens) if product.tokens else 0.0
        score = max(coverage, edit_similarity(normalized, product.normalized_name) * 0.9)
        if score > SNIPPET_MIN_SCORE:
            results.append({
                'id': product.id,
                'name': product.name,
                'price': product.base_price,
                'match_score': round(score, 2),
            })
    results.sort(key=lambda r: r['match_score'], reverse=True)
    logger.info("Catalog snippet matched %d products", len(results))
    return results
