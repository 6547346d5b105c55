# Overview: Service-layer operations for voucher numbering.

from __future__ import annotations

import re
from datetime import date

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Sale, VoucherSequence
from voucherpos.time_utils import utcnow


def _prefix() -> str:
    return current_app.config.get("VOUCHER_PREFIX", "V")


def _pad() -> int:
    return int(current_app.config.get("VOUCHER_SEQUENCE_PAD", 3))


def format_voucher_number(business_date: str, sequence: int) -> str:
    return f"{_prefix()}{business_date}{sequence:0{_pad()}d}"


def parse_voucher_number(voucher_number: str) -> tuple[str, int] | None:
    """Split 'V20250114007' into ('20250114', 7); None if it is not ours."""
    match = re.fullmatch(rf"{re.escape(_prefix())}(\d{{8}})(\d+)", voucher_number or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


def next_voucher_number(on_date: date | None = None) -> str:
    """
    Allocate the next voucher number for a business day.

    Must be called inside the sale transaction (it does not commit). The
    counter row is bumped with one UPDATE, which takes the row lock; the
    first sale of a day inserts the row, and a concurrent first insert
    fails on uq_voucher_sequences_date so the caller's retry picks up the
    existing row.
    """
    business_date = (on_date or utcnow().date()).strftime("%Y%m%d")

    stmt = (
        update(VoucherSequence)
        .where(VoucherSequence.business_date == business_date)
        .values(next_number=VoucherSequence.next_number + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(VoucherSequence.next_number)
            .filter_by(business_date=business_date)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(VoucherSequence(business_date=business_date, next_number=2, updated_at=utcnow()))
        db.session.flush()
        next_num = 1

    return format_voucher_number(business_date, next_num)


def reseed_sequences() -> int:
    """
    Rebuild the per-day counters from the vouchers that exist.

    Used after a restore so new vouchers continue after the restored ones.
    Does not commit. Returns the number of days seeded.
    """
    highest: dict[str, int] = {}
    for (voucher_number,) in db.session.query(Sale.voucher_number):
        parsed = parse_voucher_number(voucher_number)
        if parsed is None:
            continue
        day, seq = parsed
        highest[day] = max(highest.get(day, 0), seq)

    db.session.query(VoucherSequence).delete(synchronize_session=False)
    now = utcnow()
    for day, seq in highest.items():
        db.session.add(VoucherSequence(business_date=day, next_number=seq + 1, updated_at=now))
    db.session.flush()
    return len(highest)
