#!/usr/bin/env python3
"""
order-core - resolve an order message or reconcile a payment receipt from the command line
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from order_core.cache import MetricsCollector, TTLCache
from order_core.catalog_client import CatalogClient, load_local_menu
from order_core.config import load_config, reconcile_options_from_config, resolver_options_from_config
from order_core.errors import OrderCoreError
from order_core.logging_config import setup_logging
from order_core.reconciler import reconcile_receipt
from order_core.resolver import OrderResolver

logger = logging.getLogger(__name__)

DEFAULT_MENU = Path(__file__).parent / 'menu.json'


class OrderAgent:
    """Wires config, catalog source, cache and metrics around the core"""

    def __init__(self, config=None, debug=False):
        self.config = config if config is not None else load_config()
        self.metrics = MetricsCollector()
        self.cache = TTLCache(
            ttl_seconds=self.config.get('cache_ttl_seconds', 600),
            max_entries=self.config.get('cache_max_entries', 512),
        )
        self.resolver = OrderResolver(resolver_options_from_config(self.config, debug=debug),
                                      cache=self.cache, metrics=self.metrics)
        self.reconcile_options = reconcile_options_from_config(self.config, debug=debug)
        self.menu_path = Path(self.config.get('menu_path', DEFAULT_MENU))
        catalog_url = self.config.get('catalog_url')
        self.catalog_client = CatalogClient(
            catalog_url,
            api_key=self.config.get('api_key'),
            catalog_path=self.config.get('catalog_path', '/api/catalog'),
        ) if catalog_url else None
        self.synonyms = self.config.get('synonyms') or {}

    def load_catalog(self):
        if self.catalog_client:
            return self.catalog_client.fetch_catalog(fallback_path=self.menu_path)
        return load_local_menu(self.menu_path)

    def resolve(self, text):
        return self.resolver.resolve(text, self.load_catalog(), self.synonyms)

    def reconcile(self, receipt_text, order_text=None, expected_total=None):
        order = expected_total
        catalog = None
        if order is None and order_text:
            catalog = self.load_catalog()
            order = self.resolver.resolve(order_text, catalog, self.synonyms)
        return reconcile_receipt(receipt_text, order, catalog, self.reconcile_options)

    def get_status(self):
        return {
            'menu_path': str(self.menu_path),
            'remote_catalog': self.catalog_client.get_status() if self.catalog_client else None,
            'cache': self.cache.get_stats(),
            'metrics': self.metrics.get_stats(),
        }


def _build_parser():
    parser = argparse.ArgumentParser(prog='order-core', description=__doc__)
    parser.add_argument('--config', help='path to config.json')
    parser.add_argument('--debug', action='store_true', help='include diagnostics in the output')
    sub = parser.add_subparsers(dest='command', required=True)

    resolve = sub.add_parser('resolve', help='resolve an order message')
    resolve.add_argument('text')

    receipt = sub.add_parser('reconcile', help='reconcile receipt text against an order')
    receipt.add_argument('receipt', help='receipt text, or @path to read it from a file')
    receipt.add_argument('--order', help='order message to price')
    receipt.add_argument('--expected', type=float, help='expected total')
    return parser


def main(argv=None):
    args = _build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(level=config.get('log_level', 'INFO'), console=args.debug)
    agent = OrderAgent(config, debug=args.debug)

    try:
        if args.command == 'resolve':
            result = agent.resolve(args.text)
        else:
            receipt = args.receipt
            if receipt.startswith('@'):
                receipt = Path(receipt[1:]).read_text(encoding='utf-8')
            result = agent.reconcile(receipt, order_text=args.order, expected_total=args.expected)
    except OrderCoreError as e:
        logger.error(f"{e.code}: {e.message}")
        print(json.dumps(e.to_dict(), ensure_ascii=False, indent=2))
        return 1

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
