"""
projecthub/test_accounts.py

Registration rules, credential checks, tokens, and the transaction helper
the services build on.
"""

import sqlite3

import pytest

from projecthub import accounts
from projecthub.db import dump_id_list, load_id_list, transaction
from projecthub.errors import AuthenticationError, NotFound, ValidationError
from projecthub.models import UserRole


class TestRegister:

    def test_normalizes_email_and_hashes_password(self, conn):
        user = accounts.register_user(conn, " dana ", " Dana@Example.COM ", "Passw0rd1")
        assert user.username == "dana"
        assert user.email == "dana@example.com"
        assert user.role == UserRole.user

        stored = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user.id,)).fetchone()
        assert "Passw0rd1" not in stored["password_hash"]
        assert accounts.verify_password("Passw0rd1", stored["password_hash"])

    @pytest.mark.parametrize("username,email,password", [
        ("ab", "ab@example.com", "Passw0rd1"),
        ("x" * 31, "x@example.com", "Passw0rd1"),
        ("erin", "not-an-email", "Passw0rd1"),
        ("erin", "erin@example.com", "password1"),
        ("erin", "erin@example.com", "PASSWORD1"),
        ("erin", "erin@example.com", "Passwordx"),
        ("erin", "erin@example.com", "Pw0rd"),
    ])
    def test_rejects_bad_input(self, conn, username, email, password):
        with pytest.raises(ValidationError):
            accounts.register_user(conn, username, email, password)

    def test_duplicates(self, conn, make_user):
        make_user("frank")
        with pytest.raises(ValidationError, match="email"):
            accounts.register_user(conn, "frank2", "frank@example.com", "Passw0rd1")
        with pytest.raises(ValidationError, match="username"):
            accounts.register_user(conn, "frank", "other@example.com", "Passw0rd1")


class TestAuthenticate:

    def test_success(self, conn, make_user):
        user = make_user("gina")
        assert accounts.authenticate(conn, "GINA@example.com", "Passw0rd1").id == user.id

    def test_wrong_password_and_unknown_email(self, conn, make_user):
        make_user("gina")
        with pytest.raises(AuthenticationError):
            accounts.authenticate(conn, "gina@example.com", "nope")
        with pytest.raises(AuthenticationError):
            accounts.authenticate(conn, "nobody@example.com", "Passw0rd1")

    def test_deleted_user_cannot_log_in(self, conn, make_user):
        user = make_user("hank")
        accounts.soft_delete_user(conn, user.id)
        assert accounts.get_user(conn, user.id) is None
        with pytest.raises(AuthenticationError):
            accounts.authenticate(conn, "hank@example.com", "Passw0rd1")
        with pytest.raises(NotFound):
            accounts.require_user(conn, user.id)


def test_token_round_trip(conn, make_user):
    user = make_user("ivan")
    assert accounts.decode_access_token(accounts.create_access_token(user)) == user.id

    with pytest.raises(AuthenticationError):
        accounts.decode_access_token("not.a.token")


def test_update_profile(conn, make_user):
    user = make_user("jane")
    make_user("kate")

    updated = accounts.update_profile(conn, user.id, username="janet", avatar_url="https://img/1.png")
    assert updated.username == "janet"
    assert updated.avatar_url == "https://img/1.png"

    with pytest.raises(ValidationError):
        accounts.update_profile(conn, user.id, username="kate")


class TestTransaction:

    def test_rolls_back_on_error(self, conn, make_user):
        user = make_user("leo")
        with pytest.raises(RuntimeError):
            with transaction(conn):
                conn.execute("UPDATE users SET username = 'changed' WHERE id = ?", (user.id,))
                raise RuntimeError("abort")
        assert accounts.get_user(conn, user.id).username == "leo"

    def test_nested_joins_outer(self, conn, make_user):
        user = make_user("mia")
        with pytest.raises(RuntimeError):
            with transaction(conn):
                with transaction(conn):
                    conn.execute("UPDATE users SET username = 'inner' WHERE id = ?", (user.id,))
                raise RuntimeError("abort outer")
        assert accounts.get_user(conn, user.id).username == "mia"

    def test_integrity_errors_propagate(self, conn):
        with pytest.raises(sqlite3.IntegrityError):
            with transaction(conn):
                conn.execute("INSERT INTO projects (name, created_by, created_at, updated_at) VALUES ('x', 9999, 'a', 'a')")


def test_id_list_helpers():
    assert load_id_list(dump_id_list([3, 1])) == [3, 1]
    assert load_id_list(None) == []
    assert load_id_list("{broken") == []
