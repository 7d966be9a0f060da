"""
Unit tests for the ATCUD receipt QR parser.
"""
from expense_tracker import atcud

STANDARD = "A:500100144*B:999999990*C:PT*D:FS*E:N*F:20241222*G:FS 1/2*H:JJ3C-2*N:1.32*O:7.06"


class TestIsValid:
    def test_valid(self):
        assert atcud.is_valid(STANDARD)

    def test_requires_prefix_and_separator(self):
        assert not atcud.is_valid("B:1*A:2")
        assert not atcud.is_valid("A:500100144")
        assert not atcud.is_valid("")


class TestParse:
    def test_standard_layout(self):
        draft = atcud.parse(STANDARD)
        assert draft.nif == "500100144"
        assert draft.customer_nif is None
        assert draft.date == "2024-12-22"
        assert draft.time is None
        assert draft.receipt_number == "FS 1/2"
        assert draft.total == 1.32

    def test_customer_nif_kept_when_not_generic(self):
        draft = atcud.parse("A:500100144*B:123456789*F:20240105")
        assert draft.customer_nif == "123456789"

    def test_time_layout(self):
        draft = atcud.parse("A:500100144*F:20240105*H:1432*I:12.50;2.34")
        assert draft.time == "14:32"
        assert draft.total == 12.5
        assert draft.receipt_number is None

    def test_time_from_long_date(self):
        draft = atcud.parse("A:1*F:20240105093015")
        assert draft.date == "2024-01-05"
        assert draft.time == "09:30"

    def test_h_is_receipt_number_without_g(self):
        draft = atcud.parse("A:1*H:JJ3C-2*O:7.06")
        assert draft.receipt_number == "JJ3C-2"
        assert draft.total == 7.06

    def test_n_wins_over_o(self):
        draft = atcud.parse("A:1*O:9.99*N:1.00")
        assert draft.total == 1.0

    def test_malformed_values_dropped(self):
        draft = atcud.parse("A:1*F:2024AB01*N:abc*H:2599")
        assert draft.date is None
        assert draft.total is None
        assert draft.time is None

    def test_invalid_calendar_date_dropped(self):
        assert atcud.parse("A:1*F:20241340").date is None

    def test_garbage_never_raises(self):
        draft = atcud.parse("not a qr code")
        assert draft.to_wire() == {}

    def test_repeated_key_overwrites(self):
        draft = atcud.parse("A:111*A:222**N:1*N:2")
        assert draft.nif == "222"
        assert draft.total == 2.0


def test_documented_payload():
    draft = atcud.parse("A:500100144*F:20241222*N:7.06*G:FT 2024/12345")
    assert draft.to_wire() == {
        "nif": "500100144",
        "date": "2024-12-22",
        "total": 7.06,
        "receiptNumber": "FT 2024/12345",
    }


def test_generic_customer_nif_filtered():
    assert "customerNif" not in atcud.parse("A:500100144*B:999999990").to_wire()
    assert atcud.parse("A:500100144*B:123456789").customer_nif == "123456789"
