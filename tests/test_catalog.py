# Tests for the catalog index and alias map

import logging

import pytest
from order_core.catalog import (AmbiguousAlias, ResolvedAlias, build_alias_map, catalog_fingerprint,
                                find_product, flatten_catalog, match_catalog_snippet, round_money)
from order_core.errors import ValidationError


MENU = {
    'categorias': [
        {
            'id': 'pizzas',
            'nombre': 'Pizzas',
            'productos': [
                {'id': 'P1', 'nombre': 'Pizza Hawaiana', 'precio': 25,
                 'variantes': {'Mediana': 30, 'Familiar': 45}},
                {'id': 'P2', 'nombre': 'Pizza Pepperoni',
                 'variantes': [{'nombre': 'Personal', 'precio': 18}, {'nombre': 'Mediana', 'precio': 32}]},
            ],
        },
        {
            'id': 'bebidas',
            'productos': [
                {'sku': 'B1', 'name': 'Chicha Morada', 'price': '6.50'},
                None,
            ],
        },
    ]
}


class TestFlattenCatalog:
    """Test menu flattening"""

    def test_menu_shape(self):
        """Test categorias/productos menu keeps input order"""
        products = flatten_catalog(MENU)
        assert [p.id for p in products] == ['P1', 'P2', 'B1']
        assert products[0].category == 'pizzas'
        assert products[2].name == 'Chicha Morada'
        assert products[2].base_price == 6.5

    def test_flat_list(self):
        """Test flat product list"""
        products = flatten_catalog([{'id': 1, 'name': 'Pizza', 'price': 20}])
        assert products[0].id == '1'
        assert products[0].normalized_name == 'pizza'
        assert products[0].tokens == ('pizza',)

    def test_empty(self):
        """Test empty and None catalogs"""
        assert flatten_catalog([]) == []
        assert flatten_catalog(None) == []

    def test_bad_shape(self):
        """Test unsupported shapes raise ValidationError"""
        with pytest.raises(ValidationError):
            flatten_catalog('pizza')
        with pytest.raises(ValidationError):
            flatten_catalog({'productos': []})

    def test_missing_id_logs_warning(self, caplog):
        """Test product without id falls back to name with a warning"""
        with caplog.at_level(logging.WARNING):
            products = flatten_catalog([{'nombre': 'Salchipapa', 'precio': 12}])
        assert products[0].id == 'Salchipapa'
        assert 'missing id or name' in caplog.text

    def test_invalid_price(self, caplog):
        """Test invalid and negative prices become None"""
        with caplog.at_level(logging.WARNING):
            products = flatten_catalog([
                {'id': 'X', 'name': 'Combo', 'price': 'gratis'},
                {'id': 'Y', 'name': 'Alitas', 'price': -3},
            ])
        assert products[0].base_price is None
        assert products[1].base_price is None
        assert 'Invalid price' in caplog.text
        assert 'Negative price' in caplog.text


class TestPriceFor:
    """Test variant price lookup"""

    def setup_method(self):
        self.products = flatten_catalog(MENU)

    def test_variant_price(self):
        """Test variant-specific price"""
        hawaiana = self.products[0]
        assert hawaiana.price_for('mediana') == 30
        assert hawaiana.price_for('Familiar') == 45

    def test_unknown_variant_uses_base(self):
        """Test unknown variant falls back to base price"""
        assert self.products[0].price_for('grande') == 25
        assert self.products[0].price_for(None) == 25

    def test_variant_only_product(self):
        """Test product without base price uses mediana by default"""
        pepperoni = self.products[1]
        assert pepperoni.price_for(None) == 32
        assert pepperoni.price_for('personal') == 18

    def test_no_price(self):
        """Test product without any price"""
        product = flatten_catalog([{'id': 'Z', 'name': 'Combo'}])[0]
        assert product.price_for(None) is None
        assert product.price_for('mediana') is None

    def test_round_money(self):
        """Test half-up rounding to cents"""
        assert round_money(2.675) == 2.68
        assert round_money(0.125) == 0.13
        assert round_money(10) == 10.0


class TestAliasMap:
    """Test synonym table handling"""

    def test_id_to_aliases_shape(self):
        """Test {product_id: [aliases]}"""
        alias_map = build_alias_map({'P1': ['La Hawaiana', 'piña'], 'P2': ['peperoni']})
        assert alias_map.get('la hawaiana') == ResolvedAlias('P1')
        assert 'pina' in alias_map
        assert len(alias_map) == 3

    def test_alias_to_id_shape(self):
        """Test {alias: product_id}"""
        alias_map = build_alias_map({'la clasica': 'P2'})
        assert alias_map.get('LA CLÁSICA') == ResolvedAlias('P2')

    def test_ambiguity_across_shapes(self):
        """Test second id for an alias escalates, keeping both"""
        alias_map = build_alias_map({'P1': ['la clasica'], 'la clasica': 'P2'})
        entry = alias_map.get('la clasica')
        assert isinstance(entry, AmbiguousAlias)
        assert entry.candidate_ids == ('P1', 'P2')

    def test_no_duplicate_candidates(self):
        """Test same id twice stays resolved"""
        alias_map = build_alias_map({'P1': ['hawaiana', 'Hawaiana']})
        assert alias_map.get('hawaiana') == ResolvedAlias('P1')

    def test_by_length(self):
        """Test longest alias first"""
        alias_map = build_alias_map({'P1': ['pizza', 'pizza grande de la casa'], 'P2': ['la pizza roja']})
        assert [alias for alias, _ in alias_map.by_length()] == [
            'pizza grande de la casa', 'la pizza roja', 'pizza']

    def test_empty_and_invalid(self):
        """Test empty synonyms and bad shapes"""
        assert len(build_alias_map(None)) == 0
        assert len(build_alias_map({})) == 0
        with pytest.raises(ValidationError):
            build_alias_map(['pizza'])

    def test_to_dict(self):
        """Test serializable form"""
        alias_map = build_alias_map({'P1': ['casa'], 'casa': 'P2', 'P3': ['roja']})
        assert alias_map.to_dict() == {'casa': ['P1', 'P2'], 'roja': 'P3'}


class TestCatalogHelpers:
    """Test fingerprint, lookup and snippet matching"""

    def test_fingerprint_changes_with_catalog(self):
        """Test any price change changes the fingerprint"""
        a = [{'id': 'P1', 'name': 'Pizza', 'price': 20}]
        b = [{'id': 'P1', 'name': 'Pizza', 'price': 21}]
        assert catalog_fingerprint(a) == catalog_fingerprint([dict(a[0])])
        assert catalog_fingerprint(a) != catalog_fingerprint(b)
        assert catalog_fingerprint(a) != catalog_fingerprint(a, {'P1': ['pizzita']})

    def test_find_product(self):
        """Test lookup by id or sku"""
        products = flatten_catalog(MENU)
        assert find_product(products, 'P2').name == 'Pizza Pepperoni'
        assert find_product(products, 'B1').name == 'Chicha Morada'
        assert find_product(products, 'nope') is None

    def test_match_catalog_snippet(self):
        """Test pasted catalog line maps to the product"""
        results = match_catalog_snippet('Pizza Hawaiana Mediana S/35', MENU)
        assert results[0]['id'] == 'P1'
        assert results[0]['match_score'] == 1.0
        assert all(r['match_score'] > 0.35 for r in results)

    def test_match_catalog_snippet_invalid(self):
        """Test invalid snippet text"""
        assert match_catalog_snippet('', MENU) == []
        assert match_catalog_snippet(None, MENU) == []


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
