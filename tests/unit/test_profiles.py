"""
Unit tests for role resolution and self-service profile edits
"""
from decimal import Decimal

import pytest

from app.schemas.auth import AuthContext, Role
from app.schemas.profile import ProfileUpdate
from app.services.errors import NotFound, PermissionDenied, ValidationError
from app.services.profiles import ProfileService, ensure_profile, require_admin
from conftest import add_profile, assign


class TestEnsureProfile:
    def test_new_user_becomes_tutor(self, store):
        profile = ensure_profile(store, "u-1", "new@example.com", admin_email="boss@example.com")

        assert profile.role == Role.tutor
        assert store.tables["profiles"][0]["email"] == "new@example.com"

    def test_bootstrap_admin_email(self, store):
        profile = ensure_profile(store, "u-1", "Boss@Example.com", admin_email="boss@example.com")

        assert profile.role == Role.admin

    def test_no_admin_configured(self, store):
        profile = ensure_profile(store, "u-1", "boss@example.com", admin_email=None)

        assert profile.role == Role.tutor

    def test_existing_profile_is_returned_unchanged(self, store):
        add_profile(store, "u-1", Role.admin, "Ada", "Admin", "ada@example.com")

        profile = ensure_profile(store, "u-1", "ada@example.com", admin_email="boss@example.com")

        assert profile.role == Role.admin
        assert profile.first_name == "Ada"
        assert store.writes() == [("insert", "profiles")]

    def test_bootstrap_admin_role_corrected(self, store):
        add_profile(store, "u-1", Role.tutor, email="boss@example.com")

        profile = ensure_profile(store, "u-1", "boss@example.com", admin_email="boss@example.com")

        assert profile.role == Role.admin
        assert store.tables["profiles"][0]["role"] == "admin"

    def test_null_role_reads_as_tutor(self, store):
        store.tables["profiles"].append({"id": "u-1", "role": None})

        assert ensure_profile(store, "u-1", None).role == Role.tutor

    def test_concurrent_provisioning(self, store, monkeypatch):
        # The row appears between our read and our insert
        real_select = store.select
        reads = []

        def racing_select(table, filters=None, **kwargs):
            reads.append(table)
            if len(reads) == 1:
                store.tables["profiles"].append({"id": "u-1", "role": "tutor"})
                return []
            return real_select(table, filters, **kwargs)

        monkeypatch.setattr(store, "select", racing_select)

        profile = ensure_profile(store, "u-1", "x@example.com")

        assert profile.id == "u-1"
        assert len(store.tables["profiles"]) == 1


class TestRequireAdmin:
    def test_admin_passes(self):
        require_admin(AuthContext(user_id="a", role=Role.admin))

    def test_tutor_denied(self):
        with pytest.raises(PermissionDenied):
            require_admin(AuthContext(user_id="t", role=Role.tutor))


class TestProfileService:
    def test_update_own(self, store, alice):
        profile = ProfileService(store).update_own(alice, ProfileUpdate(first_name="Ally", phone="555"))

        assert profile.first_name == "Ally"
        assert profile.phone == "555"
        assert profile.last_name == "Smith"
        assert profile.updated_at is not None

    def test_update_own_cannot_blank_name(self, store, alice):
        with pytest.raises(ValidationError):
            ProfileService(store).update_own(alice, ProfileUpdate(last_name=None))

    def test_empty_update_returns_profile(self, store, alice):
        profile = ProfileService(store).update_own(alice, ProfileUpdate())

        assert profile.id == alice.user_id
        assert ("update", "profiles") not in store.calls

    def test_get_missing(self, store):
        with pytest.raises(NotFound):
            ProfileService(store).get("nobody")

    def test_my_assignments(self, store, alice, math):
        assign(store, alice.user_id, math["id"], "35.5")

        subjects = ProfileService(store).my_assignments(alice)

        assert [(s.subject_name, s.rate_per_hour) for s in subjects] == [("Math", Decimal("35.5"))]
