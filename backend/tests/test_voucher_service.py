"""
Voucher numbering tests.
"""

from datetime import date

from voucherpos.extensions import db
from voucherpos.models import Sale, VoucherSequence
from voucherpos.services.voucher_service import (
    format_voucher_number,
    next_voucher_number,
    parse_voucher_number,
    reseed_sequences,
)


def test_format_and_parse(app):
    with app.app_context():
        assert format_voucher_number("20250114", 7) == "V20250114007"
        assert format_voucher_number("20250114", 1234) == "V202501141234"
        assert parse_voucher_number("V20250114007") == ("20250114", 7)
        assert parse_voucher_number("X20250114007") is None
        assert parse_voucher_number("") is None


def test_sequence_is_per_day(db_session):
    day1, day2 = date(2025, 1, 14), date(2025, 1, 15)

    assert next_voucher_number(day1) == "V20250114001"
    assert next_voucher_number(day1) == "V20250114002"
    assert next_voucher_number(day2) == "V20250115001"
    db.session.commit()

    row = db_session.query(VoucherSequence).filter_by(business_date="20250114").one()
    assert row.next_number == 3


def test_reseed_continues_after_highest_voucher(db_session):
    for number in ("V20250114003", "V20250114009", "V20250115001", "legacy-1"):
        db_session.add(Sale(voucher_number=number))
    db_session.commit()

    assert reseed_sequences() == 2
    db.session.commit()

    assert next_voucher_number(date(2025, 1, 14)) == "V20250114010"
    assert next_voucher_number(date(2025, 1, 15)) == "V20250115002"
    assert next_voucher_number(date(2025, 1, 16)) == "V20250116001"
