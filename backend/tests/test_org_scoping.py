# Overview: Pytest coverage for organization scoping of reference data and ledger reads.

"""
Organization Scoping Tests

Every service call carries an OrgContext. These tests prove that:
1. strict mode only sees the caller's rows
2. include_unscoped mode also sees legacy rows without an org_id
3. a context without an org_id (single-tenant deployment) is not filtered
"""

import pytest

from fieldstock.errors import DuplicateIdentity, NotFoundError, ValidationError
from fieldstock.extensions import db
from fieldstock.models import Material, StockArea
from fieldstock.services import ledger_service, receipt_service, reference_service, stock_level_service
from fieldstock.services.ledger_service import Location
from fieldstock.services.tenant_service import (
    SCOPE_INCLUDE_UNSCOPED,
    SCOPE_STRICT,
    OrgContext,
    org_key,
    org_tag,
)

from conftest import receive


@pytest.fixture
def legacy_material(db_session):
    material = Material(org_id=None, product_code="LEG-1", name="Legacy splitter")
    db_session.add(material)
    db_session.commit()
    return material


@pytest.fixture
def foreign_area(db_session):
    area = StockArea(org_id=2, name="Other org store")
    db_session.add(area)
    db_session.commit()
    return area


class TestOrgContext:

    def test_unknown_scope_mode_rejected(self):
        with pytest.raises(ValidationError):
            OrgContext(org_id=1, scope_mode="everything")

    def test_with_scope_copies_context(self, ctx):
        relaxed = ctx.with_scope(SCOPE_INCLUDE_UNSCOPED)
        assert relaxed.org_id == ctx.org_id
        assert relaxed.scope_mode == SCOPE_INCLUDE_UNSCOPED
        assert ctx.scope_mode == SCOPE_STRICT

    def test_org_tag_and_key(self):
        assert org_tag(OrgContext(org_id=5)) == 5
        assert org_key(OrgContext(org_id=5)) == 5
        assert org_tag(OrgContext()) is None
        assert org_key(OrgContext()) == 0


class TestReferenceScoping:

    def test_foreign_area_invisible(self, ctx, foreign_area):
        with pytest.raises(ValidationError):
            reference_service.get_active_stock_area(ctx, foreign_area.id)

    def test_legacy_material_hidden_in_strict_mode(self, ctx, legacy_material):
        with pytest.raises(ValidationError):
            reference_service.get_active_material(ctx, legacy_material.id)

    def test_legacy_material_visible_when_including_unscoped(self, ctx, legacy_material):
        relaxed = ctx.with_scope(SCOPE_INCLUDE_UNSCOPED)
        assert reference_service.get_active_material(relaxed, legacy_material.id).id == legacy_material.id

    def test_unscoped_context_sees_everything(self, db_session, legacy_material, foreign_area):
        anyone = OrgContext(user_id=1)
        assert reference_service.get_active_material(anyone, legacy_material.id)
        assert reference_service.get_active_stock_area(anyone, foreign_area.id)

    def test_default_stock_area_is_per_org(self, ctx, foreign_area, main_store):
        assert reference_service.get_default_stock_area(ctx).id == main_store.id
        assert reference_service.get_default_stock_area(OrgContext(org_id=2)).id == foreign_area.id
        with pytest.raises(ValidationError):
            reference_service.get_default_stock_area(OrgContext(org_id=3))

    def test_duplicate_product_code_rejected(self, ctx, cable):
        with pytest.raises(DuplicateIdentity):
            reference_service.create_material(ctx, product_code=cable.product_code, name="Again")
        db.session.rollback()


class TestLedgerScoping:

    def test_units_invisible_to_other_org(self, ctx, main_store, cable):
        unit_id = receive(ctx, main_store, cable, quantity=2)[0]
        other = OrgContext(org_id=2, user_id=ctx.user_id)

        assert ledger_service.find_available(other, cable.id, Location.warehouse(main_store.id)) == []
        with pytest.raises(NotFoundError):
            ledger_service.get_unit(other, unit_id)

    def test_receipt_invisible_to_other_org(self, ctx, main_store, cable):
        receipt = receipt_service.submit_receipt(ctx, {
            "stock_area_id": main_store.id,
            "items": [{"material_id": cable.id, "quantity": 1}],
        })["receipt"]

        with pytest.raises(NotFoundError):
            receipt_service.get_receipt(OrgContext(org_id=2), receipt["id"])

    def test_stock_levels_scoped(self, ctx, main_store, cable):
        receive(ctx, main_store, cable, quantity=3)

        mine = stock_level_service.get_stock_levels(ctx)
        theirs = stock_level_service.get_stock_levels(OrgContext(org_id=2))

        assert mine["summary"]["total_stock"] == 3
        assert theirs["stock_levels"] == []
