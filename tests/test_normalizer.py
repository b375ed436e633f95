# Tests for the text normalizer

import pytest
from order_core.normalizer import extreme_normalize, normalize, remove_diacritics, tokenize


class TestNormalize:
    """Test canonical form"""

    def test_lowercase_and_diacritics(self):
        """Test accents and case are folded"""
        assert normalize('Pízza Pequeña') == 'pizza pequena'

    def test_punctuation_becomes_space(self):
        """Test non-alphanumerics and underscores split words"""
        assert normalize('2x pizza,  hawaiana!!') == '2x pizza hawaiana'
        assert normalize('pollo_broster') == 'pollo broster'

    def test_non_string_input(self):
        """Test anything that is not a string gives empty string"""
        assert normalize(None) == ''
        assert normalize(42) == ''
        assert normalize(['pizza']) == ''

    def test_whitespace_only(self):
        """Test whitespace collapses to empty"""
        assert normalize('   \n\t ') == ''

    def test_idempotent(self):
        """Test normalizing twice changes nothing"""
        samples = [
            'Quiero 2 PIZZAS Medianas, sin cebolla!!',
            'Ñoquis à la crème',
            '  S/. 24.00  _total_ ',
            'pízza',
            '',
        ]
        for s in samples:
            once = normalize(s)
            assert normalize(once) == once

    def test_case_and_accent_variants_agree(self):
        """Test PIZZA, pízza and pizzA share one form"""
        assert normalize('PIZZA') == normalize('pízza') == normalize('pizzA') == 'pizza'

    def test_remove_diacritics(self):
        """Test combining marks are dropped, case kept"""
        assert remove_diacritics('Ñandú') == 'Nandu'
        assert remove_diacritics(None) == ''


class TestTokenize:
    """Test tokenization"""

    def test_tokens(self):
        """Test tokens come from the normalized form"""
        assert tokenize('Pizza  Hawaiana, Familiar') == ['pizza', 'hawaiana', 'familiar']

    def test_empty(self):
        """Test empty input yields no tokens"""
        assert tokenize('') == []
        assert tokenize(None) == []


class TestExtremeNormalize:
    """Test abbreviation and spelling expansion"""

    def test_abbreviations(self):
        """Test chat abbreviations expand word by word"""
        assert extreme_normalize('tb quiero 2 pls') == 'tambien quiero dos por favor'

    def test_abbreviation_inside_word_untouched(self):
        """Test only whole words are expanded"""
        assert extreme_normalize('queso') == 'queso'

    def test_spelling_variants(self):
        """Test menu spelling variants are canonicalized"""
        assert extreme_normalize('Peperoni') == 'pepperoni'
        assert extreme_normalize('pizza margarita') == 'pizza margherita'
        assert extreme_normalize('hawaiiana con choriso') == 'hawaiana con chorizo'

    def test_digit_quesos(self):
        """Test '4 quesos' reaches the same form as 'cuatro quesos'"""
        assert extreme_normalize('4 quesos') == extreme_normalize('Cuatro Quesos') == 'cuatro quesos'

    def test_multiword_variant(self):
        """Test multi-word variants"""
        assert extreme_normalize('papas fritas') == 'papa frita'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
