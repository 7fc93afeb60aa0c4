"""
projecthub/accounts.py

User accounts: registration, credential checks, JWT access tokens and
lookups used by the other services to validate user references.

Users are soft-deleted (deleted_at); every read path here filters them out.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import sqlite3
import time
from typing import Optional

import jwt

from projecthub import config
from projecthub.db import now_utc, to_db_time, transaction
from projecthub.errors import AuthenticationError, NotFound, ValidationError
from projecthub.models import User, UserRole

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PBKDF2_ITERATIONS = 120_000

USER_COLUMNS = "id, username, email, role, avatar_url, deleted_at, created_at, updated_at"


# ---------------------------------------------------------
# Password + token helpers
# ---------------------------------------------------------
def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, _, expected = password_hash.partition("$")
    if not expected:
        return False
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def validate_password_strength(password: str) -> bool:
    """At least 8 chars with a digit, a lowercase and an uppercase letter."""
    if len(password) < 8:
        return False
    return (
        bool(re.search(r"[0-9]", password))
        and bool(re.search(r"[a-z]", password))
        and bool(re.search(r"[A-Z]", password))
    )


def create_access_token(user: User) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role.value,
        "iat": now,
        "exp": now + config.ACCESS_TOKEN_MINUTES * 60,
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by a valid token."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    sub = payload.get("sub")
    if not sub or not str(sub).isdigit():
        raise AuthenticationError("Invalid token payload")
    return int(sub)


# ---------------------------------------------------------
# Queries
# ---------------------------------------------------------
def get_user(conn: sqlite3.Connection, user_id: int) -> Optional[User]:
    row = conn.execute(
        f"SELECT {USER_COLUMNS} FROM users WHERE id = ? AND deleted_at IS NULL",
        (user_id,),
    ).fetchone()
    return User.from_row(row) if row else None


def require_user(conn: sqlite3.Connection, user_id: int, label: str = "User") -> User:
    user = get_user(conn, user_id)
    if user is None:
        raise NotFound(label, user_id)
    return user


def user_exists(conn: sqlite3.Connection, user_id: int) -> bool:
    row = conn.execute(
        "SELECT 1 FROM users WHERE id = ? AND deleted_at IS NULL",
        (user_id,),
    ).fetchone()
    return row is not None


# ---------------------------------------------------------
# Commands
# ---------------------------------------------------------
def register_user(
    conn: sqlite3.Connection,
    username: str,
    email: str,
    password: str,
    role: UserRole = UserRole.user,
) -> User:
    username = (username or "").strip()
    email_norm = (email or "").strip().lower()

    if not 3 <= len(username) <= 30:
        raise ValidationError("username must be 3-30 characters")
    if not EMAIL_RE.match(email_norm):
        raise ValidationError("email is not valid")
    if not validate_password_strength(password or ""):
        raise ValidationError(
            "password must be at least 8 characters and contain a lowercase letter, "
            "an uppercase letter and a digit"
        )

    now = to_db_time(now_utc())
    with transaction(conn):
        clash = conn.execute(
            "SELECT username, email FROM users WHERE username = ? OR email = ?",
            (username, email_norm),
        ).fetchone()
        if clash:
            field = "email" if clash["email"] == email_norm else "username"
            raise ValidationError(f"{field} already registered")

        cur = conn.execute(
            """
            INSERT INTO users (username, email, password_hash, role, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (username, email_norm, hash_password(password), UserRole(role).value, now, now),
        )
        user_id = cur.lastrowid

    print(f"[AUTH] Registered user_id={user_id}, username={username!r}")
    return get_user(conn, user_id)


def authenticate(conn: sqlite3.Connection, email: str, password: str) -> User:
    row = conn.execute(
        f"SELECT {USER_COLUMNS}, password_hash FROM users WHERE email = ? AND deleted_at IS NULL",
        ((email or "").strip().lower(),),
    ).fetchone()

    if not row or not verify_password(password or "", row["password_hash"]):
        if config.IS_DEV:
            print(f"[AUTH] Failed login for email={email!r}")
        raise AuthenticationError("Invalid email or password")

    return User.from_row(row)


def update_profile(
    conn: sqlite3.Connection,
    user_id: int,
    username: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> User:
    user = require_user(conn, user_id)
    new_username = user.username if username is None else username.strip()
    if not 3 <= len(new_username) <= 30:
        raise ValidationError("username must be 3-30 characters")

    with transaction(conn):
        if new_username != user.username:
            taken = conn.execute(
                "SELECT 1 FROM users WHERE username = ? AND id != ?",
                (new_username, user_id),
            ).fetchone()
            if taken:
                raise ValidationError("username already registered")
        conn.execute(
            "UPDATE users SET username = ?, avatar_url = ?, updated_at = ? WHERE id = ?",
            (
                new_username,
                user.avatar_url if avatar_url is None else (avatar_url or None),
                to_db_time(now_utc()),
                user_id,
            ),
        )
    return get_user(conn, user_id)


def soft_delete_user(conn: sqlite3.Connection, user_id: int) -> None:
    require_user(conn, user_id)
    now = to_db_time(now_utc())
    with transaction(conn):
        conn.execute(
            "UPDATE users SET deleted_at = ?, updated_at = ? WHERE id = ?",
            (now, now, user_id),
        )
    print(f"[AUTH] Soft-deleted user_id={user_id}")
