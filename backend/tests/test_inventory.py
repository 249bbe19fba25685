"""
API key and legacy v0 service tests.

Strict inventory policy confines keys to their owner and hides the v0
endpoints; permissive policy lets both reach any user's data and records
an INVENTORY event for it.
"""

import pytest

from vulnyoga.models import ApiKey, Order, STATUS_PAID
from vulnyoga.policy import PolicyConfig
from vulnyoga.security import CATEGORY_INVENTORY, CATEGORY_OBJECT_LEVEL, Principal
from vulnyoga.services import api_key_service, legacy_service
from vulnyoga.services.api_key_service import KEY_PREFIX
from vulnyoga.services.audit_service import RecordingAuditSink
from vulnyoga.validation import NotFoundError, ValidationError


STRICT = PolicyConfig.all_strict()
PERMISSIVE = PolicyConfig.all_permissive()


@pytest.fixture
def recorder():
    return RecordingAuditSink()


def principal(user):
    return Principal(id=user.id, role=user.role)


@pytest.fixture
def alice_key(db_session, alice):
    key = ApiKey(user_id=alice.id, key=api_key_service.generate_api_key(), label="alice laptop")
    db_session.add(key)
    db_session.commit()
    return key


class TestApiKeys:

    def test_generated_key_format(self):
        key = api_key_service.generate_api_key()
        assert key.startswith(KEY_PREFIX)
        assert len(key) == len(KEY_PREFIX) + 64
        assert key != api_key_service.generate_api_key()

    def test_create_own_key(self, alice, recorder):
        key = api_key_service.create_key(principal(alice), {"label": "  ci runner "}, STRICT, recorder)
        assert key.user_id == alice.id
        assert key.label == "ci runner"
        assert key.revoked is False
        assert recorder.events == []

    @pytest.mark.parametrize("label", [None, "", "   ", 7])
    def test_label_required(self, alice, recorder, label):
        with pytest.raises(ValidationError, match="label is required"):
            api_key_service.create_key(principal(alice), {"label": label}, STRICT, recorder)

    def test_label_too_long(self, alice, recorder):
        with pytest.raises(ValidationError):
            api_key_service.create_key(principal(alice), {"label": "x" * 129}, STRICT, recorder)

    def test_strict_create_ignores_foreign_user(self, alice, carol, recorder):
        key = api_key_service.create_key(
            principal(carol), {"label": "sneaky", "user_id": alice.id}, STRICT, recorder,
        )
        assert key.user_id == carol.id
        assert recorder.events == []

    def test_permissive_create_for_foreign_user(self, alice, carol, recorder):
        key = api_key_service.create_key(
            principal(carol), {"label": "sneaky", "user_id": alice.id}, PERMISSIVE, recorder,
        )
        assert key.user_id == alice.id
        assert [e.category for e in recorder.events] == [CATEGORY_INVENTORY]

    def test_permissive_create_for_missing_user(self, carol, recorder):
        with pytest.raises(NotFoundError):
            api_key_service.create_key(principal(carol), {"label": "x", "user_id": 9999}, PERMISSIVE, recorder)

    def test_strict_list_only_own(self, alice, carol, alice_key, recorder):
        assert api_key_service.list_keys(principal(carol), alice.id, STRICT, recorder) == []
        assert [k.id for k in api_key_service.list_keys(principal(alice), None, STRICT, recorder)] == [alice_key.id]
        assert recorder.events == []

    def test_permissive_list_foreign_keys(self, alice, carol, alice_key, recorder):
        listed = api_key_service.list_keys(principal(carol), str(alice.id), PERMISSIVE, recorder)
        assert [k.key for k in listed] == [alice_key.key]
        assert [e.category for e in recorder.events] == [CATEGORY_INVENTORY]

    def test_permissive_list_bad_user_id(self, carol, recorder):
        with pytest.raises(ValidationError):
            api_key_service.list_keys(principal(carol), "abc", PERMISSIVE, recorder)

    def test_revoke_own_key(self, alice, alice_key, recorder):
        key = api_key_service.revoke_key(principal(alice), alice_key.id, STRICT, recorder)
        assert key.revoked is True
        assert recorder.events == []

    def test_strict_foreign_revoke_looks_missing(self, db_session, carol, alice_key, recorder):
        with pytest.raises(NotFoundError):
            api_key_service.revoke_key(principal(carol), alice_key.id, STRICT, recorder)
        db_session.refresh(alice_key)
        assert alice_key.revoked is False

    def test_permissive_foreign_revoke(self, carol, alice_key, recorder):
        key = api_key_service.revoke_key(principal(carol), alice_key.id, PERMISSIVE, recorder)
        assert key.revoked is True
        assert [e.category for e in recorder.events] == [CATEGORY_INVENTORY]

    def test_revoke_missing_key(self, alice, recorder):
        with pytest.raises(NotFoundError):
            api_key_service.revoke_key(principal(alice), 9999, PERMISSIVE, recorder)


class TestLegacyEndpoints:

    @pytest.mark.parametrize("call", [
        lambda p, r: legacy_service.list_all_users(None, p, r),
        lambda p, r: legacy_service.user_orders(None, 1, p, r),
        lambda p, r: legacy_service.bulk_items(None, "supplier", p, r),
    ])
    def test_strict_endpoints_do_not_exist(self, db_session, recorder, call):
        with pytest.raises(NotFoundError, match="Endpoint not found"):
            call(STRICT, recorder)
        assert recorder.events == []

    def test_permissive_list_all_users(self, alice, bob, recorder):
        users = legacy_service.list_all_users(None, PERMISSIVE, recorder)
        assert {u["email"] for u in users} == {alice.email, bob.email}
        assert all("password_hash" not in u and "reset_token" not in u for u in users)
        assert [e.category for e in recorder.events] == [CATEGORY_INVENTORY]
        assert recorder.events[0].principal_id is None

    def test_permissive_user_orders_attach_owner(self, db_session, alice, recorder):
        db_session.add(Order(owner_id=alice.id, status=STATUS_PAID, items=[], total_cents=1500, paid=True))
        db_session.commit()

        orders = legacy_service.user_orders(None, alice.id, PERMISSIVE, recorder)
        assert len(orders) == 1
        assert orders[0]["owner"] == {"id": alice.id, "name": alice.name, "email": alice.email}
        assert [e.category for e in recorder.events] == [CATEGORY_INVENTORY, CATEGORY_OBJECT_LEVEL]

    def test_permissive_own_orders_not_flagged_as_object_level(self, alice, recorder):
        legacy_service.user_orders(principal(alice), alice.id, PERMISSIVE, recorder)
        assert [e.category for e in recorder.events] == [CATEGORY_INVENTORY]

    def test_permissive_bulk_items_public_fields(self, mat, recorder):
        items = legacy_service.bulk_items(None, None, PERMISSIVE, recorder)
        assert items[0]["name"] == mat.name
        assert "cost_price_cents" not in items[0]
        assert "supplier_email" not in items[0]

    def test_permissive_bulk_items_with_supplier(self, mat, recorder):
        items = legacy_service.bulk_items(None, "supplier", PERMISSIVE, recorder)
        assert items[0]["cost_price_cents"] == mat.cost_price_cents
        assert items[0]["supplier_email"] == mat.supplier_email
