"""Tests for account lookup and update rules."""

import pytest

from conftest import PASSWORD

from certdesk.errors import ErrorKind
from certdesk.services import user_service


class TestGetUser:
    def test_found(self, db, users):
        assert user_service.get_user(db, users["user"].id).value.username == "viewer"

    def test_missing(self, db, users):
        assert user_service.get_user(db, "nope").kind == ErrorKind.NOT_FOUND


class TestUpdateUser:
    def test_admin_updates_details(self, db, users, actors):
        result = user_service.update_user(db, actors["admin"], users["user"].id, {
            "full_name": "Vera V.", "email": "vera@example.org",
        })
        assert result.ok
        assert (result.value.full_name, result.value.email) == ("Vera V.", "vera@example.org")

    def test_password_change_takes_effect(self, db, users, actors):
        user_service.update_user(db, actors["admin"], users["user"].id, {"password": "N3w-pass"}).unwrap()

        assert user_service.authenticate(db, "viewer", "N3w-pass") is not None
        assert user_service.authenticate(db, "viewer", PASSWORD) is None

    def test_deactivated_account_cannot_log_in(self, db, users, actors):
        user_service.update_user(db, actors["admin"], users["user"].id, {"is_active": False}).unwrap()
        assert user_service.authenticate(db, "viewer", PASSWORD) is None

    def test_only_super_grants_super(self, db, users, actors):
        denied = user_service.update_user(db, actors["admin"], users["user"].id, {"role": "super"})
        assert denied.kind == ErrorKind.FORBIDDEN

        granted = user_service.update_user(db, actors["super"], users["user"].id, {"role": "super"})
        assert granted.value.role == "super"

    def test_admin_cannot_touch_super_account(self, db, users, actors):
        result = user_service.update_user(db, actors["admin"], users["super"].id, {"full_name": "Renamed"})
        assert result.kind == ErrorKind.FORBIDDEN

    def test_cannot_change_own_role(self, db, users, actors):
        result = user_service.update_user(db, actors["admin"], users["admin"].id, {"role": "user"})
        assert result.kind == ErrorKind.FORBIDDEN
        assert result.error.message == "You cannot change your own role"

    def test_keeping_own_role_is_allowed(self, db, users, actors):
        changes = {"role": "admin", "full_name": "A"}
        result = user_service.update_user(db, actors["admin"], users["admin"].id, changes)
        assert result.ok

    def test_cannot_deactivate_self(self, db, users, actors):
        result = user_service.update_user(db, actors["super"], users["super"].id, {"is_active": False})
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.parametrize("changes, field", [
        ({"role": "headmaster"}, "role"),
        ({"username": "   "}, "username"),
        ({"password": ""}, "password"),
        ({"phone_no": "123"}, "body"),
    ])
    def test_invalid_changes(self, db, users, actors, changes, field):
        result = user_service.update_user(db, actors["admin"], users["user"].id, changes)
        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert result.error.detail["errors"][0]["field"] == field

    def test_taken_username(self, db, users, actors):
        result = user_service.update_user(db, actors["admin"], users["user"].id, {"username": "admin2"})
        assert result.kind == ErrorKind.DUPLICATE_IDENTIFIER
        assert result.error.detail["fields"][0]["field"] == "username"

    def test_missing_account(self, db, users, actors):
        assert user_service.update_user(db, actors["admin"], "nope", {"full_name": "X"}).kind == ErrorKind.NOT_FOUND

    def test_user_role_cannot_update(self, db, users, actors):
        result = user_service.update_user(db, actors["user"], users["admin2"].id, {"full_name": "X"})
        assert result.kind == ErrorKind.FORBIDDEN
