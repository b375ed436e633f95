# Catalog Client - REST client for the menu/catalog source
# Fetches the menu for resolution; falls back to a local menu.json

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

import requests

from .errors import CatalogSourceError

logger = logging.getLogger(__name__)


def load_local_menu(path: Union[str, Path]) -> Any:
    """Read a menu.json (flat product list or {"categorias": [...]})"""
    menu_path = Path(path)
    try:
        with open(menu_path, encoding='utf-8') as f:
            menu = json.load(f)
    except FileNotFoundError as e:
        raise CatalogSourceError(f"Menu file not found: {menu_path}", {'path': str(menu_path)}) from e
    except json.JSONDecodeError as e:
        raise CatalogSourceError(f"Invalid JSON in {menu_path}: {e}", {'path': str(menu_path)}) from e
    if not isinstance(menu, (list, dict)):
        raise CatalogSourceError("Menu file must contain a list or an object", {'path': str(menu_path)})
    logger.info(f"Loaded local menu from {menu_path}")
    return menu


class CatalogClient:
    """REST API client for fetching the catalog"""

    def __init__(self, base_url: str, api_key: str = None, timeout: int = 30,
                 catalog_path: str = '/api/catalog', max_retries: int = 3,
                 retry_delay: float = 2):
        self.base_url = base_url.rstrip('/')
        self.catalog_path = catalog_path if catalog_path.startswith('/') else '/' + catalog_path
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()

        if api_key:
            self.session.headers.update({'Authorization': f'Bearer {api_key}'})

        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'order-core/1.0'
        })

        # Retry settings
        self.max_retries = max_retries
        self.retry_delay = retry_delay  # seconds

    def _backoff(self, attempt: int):
        time.sleep(self.retry_delay * (attempt + 1))

    def get_catalog(self) -> Any:
        """GET the catalog; raises CatalogSourceError when it cannot be fetched"""
        endpoint = f"{self.base_url}{self.catalog_path}"
        last_error = None

        for attempt in range(self.max_retries):
            try:
                response = self.session.get(endpoint, timeout=self.timeout)

                if response.status_code == 200:
                    try:
                        catalog = response.json()
                    except ValueError as e:
                        raise CatalogSourceError("Catalog response is not valid JSON",
                                                 {'endpoint': endpoint}) from e
                    logger.info(f"Catalog fetched from {endpoint}")
                    return catalog

                elif response.status_code == 401:
                    logger.error("Authentication failed - check API key")
                    raise CatalogSourceError('Authentication failed',
                                             {'endpoint': endpoint, 'status_code': 401})

                elif 400 <= response.status_code < 500:
                    # Client error - don't retry
                    logger.error(f"Catalog request rejected ({response.status_code}): {response.text}")
                    raise CatalogSourceError(f"Catalog request rejected with {response.status_code}",
                                             {'endpoint': endpoint, 'status_code': response.status_code})

                else:
                    last_error = f"Server error {response.status_code}"
                    logger.warning(f"Server error {response.status_code}, retry {attempt + 1}/{self.max_retries}")
                    self._backoff(attempt)

            except requests.exceptions.Timeout:
                last_error = 'Timeout'
                logger.warning(f"Timeout, retry {attempt + 1}/{self.max_retries}")
                self._backoff(attempt)

            except requests.exceptions.ConnectionError:
                last_error = 'Connection error'
                logger.warning(f"Connection error, retry {attempt + 1}/{self.max_retries}")
                self._backoff(attempt)

        raise CatalogSourceError('Max retries exceeded',
                                 {'endpoint': endpoint, 'last_error': last_error})

    def fetch_catalog(self, fallback_path: Optional[Union[str, Path]] = None) -> Any:
        """Remote catalog, or the local menu file when the remote source fails"""
        try:
            return self.get_catalog()
        except CatalogSourceError as e:
            if fallback_path is None:
                raise
            logger.warning(f"Remote catalog unavailable ({e.message}), using {fallback_path}")
            return load_local_menu(fallback_path)

    def check_health(self) -> bool:
        """Check if the catalog server is reachable"""
        try:
            response = self.session.get(
                f"{self.base_url}/api/health",
                timeout=5
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def get_status(self) -> Dict:
        """Get client status"""
        return {
            'base_url': self.base_url,
            'catalog_path': self.catalog_path,
            'connected': self.check_health(),
            'max_retries': self.max_retries
        }


# Stub implementation for testing
class StubCatalogClient:
    """Stub client serving an in-memory menu"""

    def __init__(self, menu: Any = None, *args, **kwargs):
        self.menu = menu if menu is not None else []
        self.fetch_count = 0

    def get_catalog(self) -> Any:
        self.fetch_count += 1
        logger.info(f"[STUB] Served catalog fetch #{self.fetch_count}")
        return self.menu

    def fetch_catalog(self, fallback_path: Optional[Union[str, Path]] = None) -> Any:
        return self.get_catalog()

    def check_health(self) -> bool:
        return True
