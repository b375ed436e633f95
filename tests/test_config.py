# Tests for configuration loading and option validation

import json

import pytest
from order_core.config import (ReconcileOptions, ResolverOptions, load_config,
                               reconcile_options_from_config, resolver_options_from_config)
from order_core.errors import ValidationError


class TestOptions:
    """Test option dataclasses"""

    def test_defaults(self):
        """Test default values"""
        options = ResolverOptions()
        assert options.allow_fuzzy is True
        assert options.fuzzy_threshold == 0.5
        assert options.debug is False
        reconcile = ReconcileOptions()
        assert reconcile.tolerance == 0.06
        assert reconcile.confidence_minimum == 0.7

    def test_out_of_range(self):
        """Test invalid values raise at construction"""
        with pytest.raises(ValidationError):
            ResolverOptions(fuzzy_threshold=1.2)
        with pytest.raises(ValidationError):
            ResolverOptions(fuzzy_threshold='0.5')
        with pytest.raises(ValidationError):
            ResolverOptions(allow_fuzzy='yes')
        with pytest.raises(ValidationError):
            ResolverOptions(language='fr')
        with pytest.raises(ValidationError):
            ReconcileOptions(tolerance=-0.1)
        with pytest.raises(ValidationError):
            ReconcileOptions(require_exact_match=1)

    def test_fingerprint_ignores_debug(self):
        """Test debug does not change the cache fingerprint"""
        assert ResolverOptions(debug=True).fingerprint() == ResolverOptions().fingerprint()
        assert ResolverOptions(fuzzy_threshold=0.7).fingerprint() != ResolverOptions().fingerprint()

    def test_int_threshold_accepted(self):
        """Test integer bounds are accepted as floats"""
        assert ResolverOptions(fuzzy_threshold=1).fuzzy_threshold == 1.0


class TestLoadConfig:
    """Test config.json and environment overrides"""

    def test_missing_file(self, tmp_path):
        """Test absent config gives an empty dict"""
        assert load_config(tmp_path / 'config.json', environ={}) == {}

    def test_file_and_env(self, tmp_path):
        """Test environment overrides the file"""
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'fuzzy_threshold': 0.6, 'catalog_url': 'http://menu'}))
        config = load_config(path, environ={'ORDER_FUZZY_THRESHOLD': '0.7', 'ORDER_ALLOW_FUZZY': 'false',
                                            'PAYMENT_TOLERANCE': '0.1'})
        assert config['fuzzy_threshold'] == 0.7
        assert config['allow_fuzzy'] is False
        assert config['tolerance'] == 0.1
        assert config['catalog_url'] == 'http://menu'

    def test_invalid_json(self, tmp_path):
        """Test malformed config.json"""
        path = tmp_path / 'config.json'
        path.write_text('{not json')
        with pytest.raises(ValidationError):
            load_config(path, environ={})

    def test_invalid_env(self, tmp_path):
        """Test unparsable environment value"""
        with pytest.raises(ValidationError):
            load_config(tmp_path / 'none.json', environ={'CACHE_MAX_ENTRIES': 'many'})

    def test_options_from_config(self):
        """Test options built from a config dict"""
        resolver = resolver_options_from_config({'fuzzy_threshold': 0.7, 'allow_fuzzy': False}, debug=True)
        assert resolver.fuzzy_threshold == 0.7
        assert resolver.allow_fuzzy is False
        assert resolver.debug is True
        reconcile = reconcile_options_from_config({'tolerance': 0.1})
        assert reconcile.tolerance == 0.1
        assert reconcile.require_exact_match is False


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
