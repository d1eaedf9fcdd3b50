from circuito.common.numbering import format_document_number, next_document_number
from circuito.modules.quotes.models import Quote


class TestNumbering:

    def test_formato(self):
        assert format_document_number("0001", 42) == "0001-00000042"
        assert format_document_number("VAL-2026", 7, width=3) == "VAL-2026-007"
        assert format_document_number("VAL-2026", 1000, width=3) == "VAL-2026-1000"

    def test_primer_numero(self, db):
        assert next_document_number(db, Quote.quote_number, "VAL-2026", width=3) == "VAL-2026-001"

    def test_maximo_numerico_al_pasar_el_relleno(self, db, quote_factory):
        for number in ("VAL-2026-998", "VAL-2026-999", "VAL-2026-1000"):
            quote_factory(quote_number=number)
        assert next_document_number(db, Quote.quote_number, "VAL-2026", width=3) == "VAL-2026-1001"

    def test_solo_cuenta_su_prefijo(self, db, quote_factory):
        quote_factory(quote_number="VAL-2025-150")
        quote_factory(quote_number="VAL-2026-002")
        assert next_document_number(db, Quote.quote_number, "VAL-2026", width=3) == "VAL-2026-003"
