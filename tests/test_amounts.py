# Tests for receipt amount and number extraction

import pytest
from order_core.amounts import (MAX_OCR_TEXT_LENGTH, detect_known_accounts, extract_amounts, extract_numbers,
                                most_likely_total, parse_amount, scan_receipt, score_amount)
from order_core.errors import ValidationError


RECEIPT = """Constancia de pago
Monto pagado: S/ 24.00
Fecha: 15/02/2026 10:30
Nro. de operacion: 12345678
Celular: 987654321
"""


class TestParseAmount:
    """Test decimal parsing"""

    def test_formats(self):
        """Test dot, comma and grouped formats"""
        assert parse_amount('24.00') == 24.0
        assert parse_amount('24,00') == 24.0
        assert parse_amount('1,250.00') == 1250.0
        assert parse_amount('1.250,00') == 1250.0
        assert parse_amount('1,250') == 1250.0
        assert parse_amount('24,5') == 24.5
        assert parse_amount('35') == 35.0

    def test_unparsable(self):
        """Test empty and non-numeric input"""
        assert parse_amount('') is None
        assert parse_amount('abc') is None
        assert parse_amount(None) is None


class TestExtractAmounts:
    """Test pattern table and scoring"""

    def test_currency_hints(self):
        """Test each currency pattern tags its hint"""
        cases = {
            'Pagaste S/ 35.50': (35.5, 'PEN'),
            'Pagaste S/.35.50': (35.5, 'PEN'),
            'PEN 12.00': (12.0, 'PEN'),
            '$ 10.00': (10.0, 'USD'),
            'USD 7.50': (7.5, 'USD'),
            'son 45 soles': (45.0, 'PEN'),
            'importe 18.90': (18.9, None),
        }
        for text, (value, currency) in cases.items():
            amounts = extract_amounts(text)
            assert len(amounts) == 1, text
            assert amounts[0].value == value
            assert amounts[0].currency_hint == currency

    def test_sorted_descending(self):
        """Test amounts come largest first"""
        amounts = extract_amounts('S/ 10.00 y S/ 120.00 y 35')
        assert [a.value for a in amounts] == [120.0, 35.0, 10.0]

    def test_dedupe_keeps_tagged_entry(self):
        """Test a currency-tagged amount is not repeated as a bare number"""
        amounts = extract_amounts('Total: S/ 24.00')
        assert len(amounts) == 1
        assert amounts[0].currency_hint == 'PEN'
        assert amounts[0].raw_text == '24.00'

    def test_dates_times_and_ids_ignored(self):
        """Test dates, times and long digit runs are not amounts"""
        assert extract_amounts('Fecha 15/02/2026 10:30') == []
        assert extract_amounts('Operacion 1234567') == []

    def test_thousands(self):
        """Test grouped thousands"""
        assert extract_amounts('Total S/ 1,250.00')[0].value == 1250.0

    def test_no_amount(self):
        """Test text without numbers"""
        assert extract_amounts('Gracias por su compra') == []
        assert extract_amounts('') == []

    def test_score(self):
        """Test score components"""
        assert score_amount(24, 'PEN', 'Monto pagado') == 0.9
        assert score_amount(60, None, '') == 0.7
        assert score_amount(20, 'PEN', 'Subtotal') == 0.75
        assert score_amount(80, 'PEN', 'Total') == 1.0

    def test_offset_and_context(self):
        """Test offset points at the number, context surrounds it"""
        text = 'Total: S/ 24.00'
        amount = extract_amounts(text)[0]
        assert text[amount.offset:amount.offset + 5] == '24.00'
        assert 'Total' in amount.context


class TestMostLikelyTotal:
    """Test total selection"""

    def test_keyword_wins(self):
        """Test amount near a total keyword beats a larger one"""
        text = 'Producto 80.00\n' + '-' * 50 + '\nTotal: S/ 24.00'
        assert most_likely_total(extract_amounts(text)).value == 24.0

    def test_magnitude_without_keyword(self):
        """Test largest weighted amount without keywords"""
        assert most_likely_total(extract_amounts('S/ 10.00 ... 60')).value == 60.0

    def test_empty(self):
        """Test no amounts"""
        assert most_likely_total([]) is None


class TestExtractNumbers:
    """Test operation and account numbers"""

    def test_split(self):
        """Test 9-11 digits are accounts, the rest operations"""
        text = 'Operacion 12345678 cuenta 19412345678 cel 987654321 ref 123456789012 op 12345678'
        operations, accounts = extract_numbers(text)
        assert operations == ['12345678', '123456789012']
        assert accounts == ['19412345678', '987654321']

    def test_short_runs_ignored(self):
        """Test runs under 6 digits"""
        assert extract_numbers('pedido 12345') == ([], [])

    def test_known_accounts(self):
        """Test known merchant accounts are flagged"""
        result = detect_known_accounts('Yape al 987654321 desde 912345678', ['987654321'])
        assert result['matches'] == ['987654321', '912345678']
        assert result['matched_known'] == ['987654321']
        assert detect_known_accounts(None) == {'matches': [], 'matched_known': []}


class TestScanReceipt:
    """Test the structured receipt scan"""

    def test_scan(self):
        """Test a typical wallet receipt"""
        scan = scan_receipt(RECEIPT)
        assert [a.value for a in scan.amounts] == [24.0]
        assert scan.most_likely_total.value == 24.0
        assert scan.most_likely_total.total_likelihood == 0.9
        assert scan.operation_numbers == ['12345678']
        assert scan.account_numbers == ['987654321']
        assert scan.diagnostics is None

    def test_operation_number_not_total(self):
        """Test a 6-digit operation number is not taken as the total"""
        scan = scan_receipt('Yape\nS/ 24.00\nNro. de operacion: 123456')
        assert [a.value for a in scan.amounts] == [24.0]
        assert scan.most_likely_total.value == 24.0
        assert scan.operation_numbers == ['123456']

    def test_grouped_phone_not_total(self):
        """Test space-grouped phone digits are not amounts"""
        scan = scan_receipt('Yape S/ 24.00 Celular 987 654 321')
        assert [a.value for a in scan.amounts] == [24.0]
        assert scan.most_likely_total.value == 24.0

    def test_mapping_input(self):
        """Test OCR provider result with a text field"""
        scan = scan_receipt({'text': RECEIPT, 'annotations': []})
        assert scan.most_likely_total.value == 24.0

    def test_missing_text(self):
        """Test absent text yields an empty scan"""
        for ocr in (None, '', {'annotations': []}):
            scan = scan_receipt(ocr)
            assert scan.amounts == []
            assert scan.most_likely_total is None

    def test_invalid_input(self):
        """Test non-text input raises ValidationError"""
        with pytest.raises(ValidationError):
            scan_receipt(123)
        with pytest.raises(ValidationError):
            scan_receipt({'text': 5})

    def test_text_capped(self):
        """Test very long text is truncated"""
        scan = scan_receipt('x' * (MAX_OCR_TEXT_LENGTH * 2))
        assert len(scan.text) == MAX_OCR_TEXT_LENGTH

    def test_debug_and_to_dict(self):
        """Test diagnostics and serialization"""
        scan = scan_receipt(RECEIPT, debug=True)
        payload = scan.to_dict()
        assert payload['most_likely_total']['value'] == 24.0
        assert payload['diagnostics']['chosen'] == '24.00'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
