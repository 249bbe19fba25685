"""
Catalog service tests: restricted item properties, search limits, writes
and CSV export.
"""

import csv
import io

import pytest

from vulnyoga.models import Item
from vulnyoga.policy import PolicyConfig
from vulnyoga.security import CATEGORY_PROPERTY_LEVEL, CATEGORY_RESOURCE_LIMIT, Principal
from vulnyoga.services import catalog_service
from vulnyoga.services.audit_service import RecordingAuditSink
from vulnyoga.validation import NotFoundError, ValidationError

from conftest import make_item


STRICT = PolicyConfig.all_strict()
PERMISSIVE = PolicyConfig.all_permissive()

RESTRICTED = {"cost_price_cents", "supplier_email"}


@pytest.fixture
def recorder():
    return RecordingAuditSink()


def principal(user):
    return Principal(id=user.id, role=user.role)


class TestReads:

    def test_strict_anonymous_sees_public_fields_only(self, mat, recorder):
        view = catalog_service.get_item(None, mat.id, STRICT, recorder)
        assert view["name"] == "Premium Yoga Mat"
        assert view["price_cents"] == 1000
        assert RESTRICTED.isdisjoint(view)

    def test_strict_owner_staff_sees_restricted(self, mat, bob, recorder):
        view = catalog_service.get_item(principal(bob), mat.id, STRICT, recorder)
        assert view["cost_price_cents"] == 500
        assert view["supplier_email"] == "supply@yogasupplier.com"

    def test_strict_other_staff_does_not(self, mat, dave, recorder):
        view = catalog_service.get_item(principal(dave), mat.id, STRICT, recorder)
        assert RESTRICTED.isdisjoint(view)

    def test_strict_admin_sees_restricted(self, mat, admin, recorder):
        view = catalog_service.get_item(principal(admin), mat.id, STRICT, recorder)
        assert RESTRICTED <= set(view)

    def test_permissive_leaks_and_records(self, mat, recorder):
        view = catalog_service.get_item(None, mat.id, PERMISSIVE, recorder)
        assert RESTRICTED <= set(view)
        assert len(recorder.by_category(CATEGORY_PROPERTY_LEVEL)) == 2

    def test_list_newest_first(self, mat, block, recorder):
        views = catalog_service.list_items(None, STRICT, recorder)
        assert [v["id"] for v in views] == [block.id, mat.id]

    def test_missing_item(self, db_session, recorder):
        with pytest.raises(NotFoundError):
            catalog_service.get_item(None, 12345, STRICT, recorder)


class TestSearch:

    @pytest.fixture
    def catalog(self, db_session, bob):
        for i in range(15):
            make_item(db_session, bob, f"Yoga Item {i:02d}", 100 + i)
        make_item(db_session, bob, "Meditation Cushion", 3499, description="Soft yoga cushion")
        make_item(db_session, bob, "100% Cotton Strap", 1299)

    def test_strict_prefix_match(self, catalog, recorder):
        result = catalog_service.search_items(None, "yoga", 1, 50, STRICT, recorder)
        assert result["pagination"]["total"] == 15
        assert all(v["name"].startswith("Yoga") for v in result["items"])

    def test_permissive_contains_match(self, catalog, recorder):
        result = catalog_service.search_items(None, "yoga", 1, 50, PERMISSIVE, recorder)
        # description "Soft yoga cushion" matches as a substring
        assert result["pagination"]["total"] == 16

    def test_strict_escapes_wildcards(self, catalog, recorder):
        result = catalog_service.search_items(None, "%", 1, 50, STRICT, recorder)
        assert result["pagination"]["total"] == 0

    def test_strict_literal_percent_prefix(self, catalog, recorder):
        result = catalog_service.search_items(None, "100%", 1, 50, STRICT, recorder)
        assert [v["name"] for v in result["items"]] == ["100% Cotton Strap"]

    def test_permissive_wildcards_match_everything(self, catalog, recorder):
        result = catalog_service.search_items(None, "%", 1, 50, PERMISSIVE, recorder)
        assert result["pagination"]["total"] == 17

    def test_strict_clamps_page_size(self, catalog, recorder):
        result = catalog_service.search_items(None, "", 1, 1000, STRICT, recorder)
        assert result["pagination"]["page_size"] == 100
        assert recorder.events == []

    def test_permissive_large_page_recorded(self, catalog, recorder):
        result = catalog_service.search_items(None, "", 1, 1000, PERMISSIVE, recorder)
        assert result["pagination"]["page_size"] == 1000
        assert len(result["items"]) == 17
        assert len(recorder.by_category(CATEGORY_RESOURCE_LIMIT)) == 1

    def test_pagination(self, catalog, recorder):
        result = catalog_service.search_items(None, "Yoga", 2, 10, STRICT, recorder)
        assert len(result["items"]) == 5
        assert result["pagination"] == {"page": 2, "page_size": 10, "total": 15, "total_pages": 2}

    def test_string_params_are_parsed(self, catalog, recorder):
        result = catalog_service.search_items(None, "Yoga", "1", "5", STRICT, recorder)
        assert result["pagination"]["page_size"] == 5

    def test_bad_page(self, catalog, recorder):
        with pytest.raises(ValidationError):
            catalog_service.search_items(None, "Yoga", "one", None, STRICT, recorder)

    @pytest.mark.parametrize("policy", [STRICT, PERMISSIVE])
    def test_page_beyond_sql_range_rejected(self, catalog, recorder, policy):
        with pytest.raises(ValidationError, match="out of range"):
            catalog_service.search_items(None, "a", "99999999999999999999", None, policy, recorder)

    def test_offset_beyond_sql_range_rejected(self, catalog, recorder):
        # each value fits in 64 bits, the computed offset does not
        with pytest.raises(ValidationError, match="page is out of range"):
            catalog_service.search_items(None, "a", 2**62, 100, STRICT, recorder)

    def test_permissive_huge_page_size_rejected(self, catalog, recorder):
        with pytest.raises(ValidationError):
            catalog_service.search_items(None, "a", 1, 2**63, PERMISSIVE, recorder)


class TestWrites:

    def test_create_owned_by_caller(self, bob, recorder):
        view = catalog_service.create_item(
            principal(bob),
            {"name": "Bolster", "price_cents": 4500, "cost_price_cents": 2000, "supplier_email": "b@s.com"},
            STRICT,
            recorder,
        )
        assert view["owner_id"] == bob.id
        assert view["cost_price_cents"] == 2000

    def test_create_requires_name_and_price(self, bob, recorder):
        with pytest.raises(ValidationError, match="price_cents"):
            catalog_service.create_item(principal(bob), {"name": "Bolster"}, STRICT, recorder)

    def test_negative_price_rejected(self, bob, recorder):
        with pytest.raises(ValidationError):
            catalog_service.create_item(principal(bob), {"name": "Bolster", "price_cents": -1}, STRICT, recorder)

    def test_strict_non_owner_cannot_change_cost(self, mat, dave, db_session, recorder):
        catalog_service.update_item(
            principal(dave), mat.id, {"price_cents": 1100, "cost_price_cents": 1}, STRICT, recorder,
        )
        item = db_session.get(Item, mat.id)
        assert item.price_cents == 1100
        assert item.cost_price_cents == 500

    def test_permissive_non_owner_changes_cost(self, mat, dave, db_session, recorder):
        catalog_service.update_item(principal(dave), mat.id, {"cost_price_cents": 1}, PERMISSIVE, recorder)
        assert db_session.get(Item, mat.id).cost_price_cents == 1
        assert len(recorder.by_category(CATEGORY_PROPERTY_LEVEL)) >= 1

    def test_update_missing(self, bob, recorder):
        with pytest.raises(NotFoundError):
            catalog_service.update_item(principal(bob), 9999, {"name": "x"}, STRICT, recorder)

    def test_delete(self, mat, db_session):
        item_id = mat.id
        catalog_service.delete_item(item_id)
        assert db_session.get(Item, item_id) is None

    def test_delete_missing(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.delete_item(9999)


class TestExport:

    def test_csv_has_public_columns_only(self, mat, block):
        rows = list(csv.reader(io.StringIO(catalog_service.export_items_csv())))
        assert rows[0] == catalog_service.CSV_COLUMNS
        assert len(rows) == 3
        assert RESTRICTED.isdisjoint(rows[0])
        assert rows[1][1] == "Premium Yoga Mat"
