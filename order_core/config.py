# Configuration for order-core
# Explicit option structures validated at construction, plus config.json/env loading

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent / 'config.json'

DEFAULT_FUZZY_THRESHOLD = 0.5
DEFAULT_TOLERANCE = 0.06
DEFAULT_CONFIDENCE_MINIMUM = 0.7
DEFAULT_CACHE_TTL_SECONDS = 600
DEFAULT_CACHE_MAX_ENTRIES = 512

SUPPORTED_LANGUAGES = ('es', 'en')

# env var -> (config key, parser)
ENV_OVERRIDES = {
    'ORDER_FUZZY_THRESHOLD': ('fuzzy_threshold', float),
    'ORDER_ALLOW_FUZZY': ('allow_fuzzy', lambda v: v.strip().lower() not in ('0', 'false', 'no')),
    'PAYMENT_TOLERANCE': ('tolerance', float),
    'OCR_CONFIDENCE_MINIMUM': ('confidence_minimum', float),
    'CACHE_TTL_SECONDS': ('cache_ttl_seconds', float),
    'CACHE_MAX_ENTRIES': ('cache_max_entries', int),
    'LOG_LEVEL': ('log_level', str),
}


def _check_ratio(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number between 0 and 1",
                              {'field': name, 'value': value})
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be a number between 0 and 1",
                              {'field': name, 'value': value})
    return float(value)


def _check_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean", {'field': name, 'value': value})
    return value


@dataclass(frozen=True)
class ResolverOptions:
    """Recognized order-resolution options"""
    allow_fuzzy: bool = True
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    debug: bool = False
    language: str = 'es'

    def __post_init__(self):
        _check_bool('allow_fuzzy', self.allow_fuzzy)
        _check_bool('debug', self.debug)
        object.__setattr__(self, 'fuzzy_threshold', _check_ratio('fuzzy_threshold', self.fuzzy_threshold))
        if self.language not in SUPPORTED_LANGUAGES:
            raise ValidationError(f"language must be one of {SUPPORTED_LANGUAGES}",
                                  {'field': 'language', 'value': self.language})

    def fingerprint(self) -> str:
        # debug never reaches the cache, keep it out of the key
        return json.dumps({'fuzzy': self.allow_fuzzy, 'threshold': self.fuzzy_threshold,
                           'lang': self.language}, sort_keys=True)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReconcileOptions:
    """Recognized receipt-reconciliation options"""
    tolerance: float = DEFAULT_TOLERANCE
    require_exact_match: bool = False
    confidence_minimum: float = DEFAULT_CONFIDENCE_MINIMUM
    debug: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'tolerance', _check_ratio('tolerance', self.tolerance))
        object.__setattr__(self, 'confidence_minimum',
                           _check_ratio('confidence_minimum', self.confidence_minimum))
        _check_bool('require_exact_match', self.require_exact_match)
        _check_bool('debug', self.debug)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Read config.json (if present) and overlay environment overrides.
    Returns an empty dict when neither source defines anything.
    """
    config_path = Path(path) if path else CONFIG_PATH
    config: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding='utf-8') as f:
            try:
                config = json.load(f)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON in {config_path}: {e}",
                                      {'path': str(config_path)}) from e
        if not isinstance(config, dict):
            raise ValidationError("config.json must contain an object", {'path': str(config_path)})

    environ = os.environ if environ is None else environ
    for env_name, (key, parse) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == '':
            continue
        try:
            config[key] = parse(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid value for {env_name}: {raw!r}",
                                  {'field': env_name, 'value': raw}) from e
        logger.debug("Config override from %s", env_name)
    return config


def resolver_options_from_config(config: Dict[str, Any], debug: bool = False) -> ResolverOptions:
    return ResolverOptions(
        allow_fuzzy=config.get('allow_fuzzy', True),
        fuzzy_threshold=config.get('fuzzy_threshold', DEFAULT_FUZZY_THRESHOLD),
        debug=debug,
        language=config.get('language', 'es'),
    )


def reconcile_options_from_config(config: Dict[str, Any], debug: bool = False) -> ReconcileOptions:
    return ReconcileOptions(
        tolerance=config.get('tolerance', DEFAULT_TOLERANCE),
        require_exact_match=config.get('require_exact_match', False),
        confidence_minimum=config.get('confidence_minimum', DEFAULT_CONFIDENCE_MINIMUM),
        debug=debug,
    )
