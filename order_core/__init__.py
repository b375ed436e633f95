# order-core
# Order text resolution and payment receipt reconciliation

__version__ = '0.1.0'

from .errors import OrderCoreError, ValidationError, ProcessingError, CatalogSourceError
from .config import ResolverOptions, ReconcileOptions, load_config
from .normalizer import normalize, tokenize, extreme_normalize
from .catalog import CatalogProduct, AliasMap, ResolvedAlias, AmbiguousAlias, flatten_catalog, build_alias_map
from .cache import TTLCache, MetricsCollector
from .resolver import OrderResolver, ResolvedItem, ResolvedOrder, resolve_order
from .amounts import DetectedAmount, ReceiptScan, extract_amounts, scan_receipt
from .reconciler import ReconciliationResult, Verdict, reconcile, reconcile_receipt, expected_total_from_order
from .catalog_client import CatalogClient, StubCatalogClient, load_local_menu

__all__ = [
    'OrderCoreError',
    'ValidationError',
    'ProcessingError',
    'CatalogSourceError',
    'ResolverOptions',
    'ReconcileOptions',
    'load_config',
    'normalize',
    'tokenize',
    'extreme_normalize',
    'CatalogProduct',
    'AliasMap',
    'ResolvedAlias',
    'AmbiguousAlias',
    'flatten_catalog',
    'build_alias_map',
    'TTLCache',
    'MetricsCollector',
    'OrderResolver',
    'ResolvedItem',
    'ResolvedOrder',
    'resolve_order',
    'DetectedAmount',
    'ReceiptScan',
    'extract_amounts',
    'scan_receipt',
    'ReconciliationResult',
    'Verdict',
    'reconcile',
    'reconcile_receipt',
    'expected_total_from_order',
    'CatalogClient',
    'StubCatalogClient',
    'load_local_menu',
]
