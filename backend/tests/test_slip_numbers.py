# Overview: Pytest coverage for slip number generation.

from datetime import date

import pytest

from fieldstock.errors import StateConflict
from fieldstock.extensions import db
from fieldstock.models import DocumentSequence, Receipt
from fieldstock.services import slip_service
from fieldstock.services.slip_service import PREFIX_RECEIPT, PREFIX_TRANSFER
from fieldstock.services.tenant_service import OrgContext
from fieldstock.time_utils import period_tag


class TestSequences:

    def test_numbers_increase_per_prefix(self, ctx):
        first = slip_service.next_sequence_number(ctx, PREFIX_RECEIPT, "JAN-2026")
        second = slip_service.next_sequence_number(ctx, PREFIX_RECEIPT, "JAN-2026")
        other = slip_service.next_sequence_number(ctx, PREFIX_TRANSFER, "JAN-2026")

        assert (first, second, other) == (1, 2, 1)

    def test_numbers_restart_per_period(self, ctx):
        slip_service.next_sequence_number(ctx, PREFIX_RECEIPT, "JAN-2026")
        assert slip_service.next_sequence_number(ctx, PREFIX_RECEIPT, "FEB-2026") == 1

    def test_numbers_are_per_org(self, ctx):
        slip_service.next_sequence_number(ctx, PREFIX_RECEIPT, "JAN-2026")
        assert slip_service.next_sequence_number(OrgContext(org_id=2), PREFIX_RECEIPT, "JAN-2026") == 1
        assert db.session.query(DocumentSequence).count() == 2


class TestSlipNumbers:

    def test_format(self, ctx):
        slip = slip_service.generate_slip_number(ctx, PREFIX_RECEIPT, Receipt.slip_number, period="SEP-2025")
        assert slip == "GRN-SEP-2025-1"

    def test_current_period_used_by_default(self, ctx):
        slip = slip_service.generate_slip_number(ctx, PREFIX_TRANSFER, Receipt.slip_number)
        assert slip == f"ST-{period_tag()}-1"

    def test_taken_number_skipped(self, ctx, main_store):
        db.session.add(Receipt(
            org_id=ctx.org_id,
            slip_number="GRN-SEP-2025-1",
            stock_area_id=main_store.id,
            receipt_date=date(2025, 9, 1),
            status="DRAFT",
        ))
        db.session.flush()

        slip = slip_service.generate_slip_number(ctx, PREFIX_RECEIPT, Receipt.slip_number, period="SEP-2025")
        assert slip == "GRN-SEP-2025-2"

    def test_gives_up_after_bounded_attempts(self, app, ctx, main_store, monkeypatch):
        monkeypatch.setitem(app.config, "SLIP_NUMBER_MAX_ATTEMPTS", 2)
        for n in (1, 2):
            db.session.add(Receipt(
                org_id=ctx.org_id,
                slip_number=f"GRN-SEP-2025-{n}",
                stock_area_id=main_store.id,
                receipt_date=date(2025, 9, 1),
                status="DRAFT",
            ))
        db.session.flush()

        with pytest.raises(StateConflict):
            slip_service.generate_slip_number(ctx, PREFIX_RECEIPT, Receipt.slip_number, period="SEP-2025")
