"""
auth/store.py -- SQLAlchemy Core persistence layer for user identities.

Pattern: Repository + Data Mapper (same as tasks/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are lower-cased and stripped before every write and lookup. The
  UNIQUE constraint on users.email is the real guard against duplicates: the
  pre-check in create_user() narrows the window, and an IntegrityError from a
  concurrent registration that slipped past it is surfaced as Conflict too.

  verify_credentials() always runs bcrypt, against a dummy hash when no
  active account matches, so unknown email, inactive account and wrong
  password cost the same and return the same None.

DB: Settings.database_url (shared with tasks/store.py so the cascade in
admin/service.py hits one database).

Layer rule: no imports from api/, tasks/, or admin/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.passwords import dummy_hash, hash_password, verify_password
from core.config import get_settings
from core.errors import Conflict
from core.pagination import Page, PageRequest

logger = logging.getLogger("taskflow.auth")

# Subtracted from password_changed_at so a token minted in the same second as
# the change (the fresh token returned by change-password) still verifies.
_PASSWORD_CHANGE_SKEW = timedelta(seconds=1)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", String(60), nullable=False),
    Column("role", String(10), nullable=False, server_default=Role.MEMBER.value),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("last_login", String(32)),
    Column("password_changed_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Public sort keys (camelCase, as sent by clients) -> columns.
USER_SORT_FIELDS = {
    "createdAt": _users.c.created_at,
    "name": _users.c.name,
    "email": _users.c.email,
    "role": _users.c.role,
    "lastLogin": _users.c.last_login,
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    # Fixed width so ORDER BY on the text column is chronological.
    return _now().isoformat(timespec="microseconds")


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities (the credential store).

    Usage:
        store = UserStore()
        user = store.create_user("Ada", "ada@example.com", "Password@123")
        store.verify_credentials("ada@example.com", "Password@123")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Credential lifecycle
    # ------------------------------------------------------------------

    def create_user(self, name: str, email: str, password: str, role: Role = Role.MEMBER) -> User:
        """Hash the password, insert the user, and return the stored record.

        Raises Conflict if the email is already registered (case-insensitive),
        whether caught by the pre-check or by the UNIQUE constraint.
        """
        email = normalize_email(email)
        if self.get_by_email(email) is not None:
            raise Conflict("User with this email already exists.")

        user_id = uuid.uuid4().hex
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        name=name.strip(),
                        email=email,
                        hashed_password=hash_password(password),
                        role=Role(role).value,
                        is_active=True,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise Conflict("User with this email already exists.") from exc
        return self.get_by_id(user_id)

    def verify_credentials(self, email: str, password: str) -> User | None:
        """Return the active user whose password matches, else None.

        Always runs bcrypt whether or not the user exists. Do NOT return early
        before running bcrypt -- that reintroduces the timing side channel.
        """
        user = self.get_by_email(email)
        if user is None or not user.is_active or not user.hashed_password:
            verify_password(password, dummy_hash())
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    def change_password(self, user_id: str, new_password: str) -> bool:
        """Re-hash and store a new password; stamp password_changed_at.

        Every token issued before password_changed_at is rejected by
        auth/tokens.verify_token(). Returns False if user_id was not found.
        """
        changed_at = (_now() - _PASSWORD_CHANGE_SKEW).isoformat(timespec="microseconds")
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    hashed_password=hash_password(new_password),
                    password_changed_at=changed_at,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def set_active(self, user_id: str, active: bool) -> bool:
        """Activate or deactivate a user. Returns False if user_id was not found.

        Deactivation does not touch issued tokens; verify_token() re-reads
        is_active on every request and rejects them there.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(is_active=active, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_ids(self, user_ids: set[str]) -> dict[str, User]:
        """Batch lookup keyed by id. Missing ids are simply absent."""
        if not user_ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.id.in_(sorted(user_ids)))).fetchall()
        return {row.id: _row_to_user(row) for row in rows}

    def exists(self, user_id: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(select(_users.c.id).where(_users.c.id == user_id)).first()
        return found is not None

    def list_users(
        self,
        page: PageRequest,
        role: Role | None = None,
        is_active: bool | None = None,
        search: str | None = None,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> Page[User]:
        """Return one page of users matching the filters, plus the total count.

        search is a case-insensitive substring match over name OR email.
        Unknown sort_by values fall back to createdAt.
        """
        conditions = []
        if role is not None:
            conditions.append(_users.c.role == Role(role).value)
        if is_active is not None:
            conditions.append(_users.c.is_active == is_active)
        if search:
            conditions.append(
                or_(
                    _users.c.name.icontains(search, autoescape=True),
                    _users.c.email.icontains(search, autoescape=True),
                )
            )

        sort_col = USER_SORT_FIELDS.get(sort_by, _users.c.created_at)
        ordering = sort_col.asc() if order == "asc" else sort_col.desc()

        stmt = _users.select().where(*conditions).order_by(ordering, _users.c.id).offset(page.offset).limit(page.limit)
        count_stmt = select(func.count()).select_from(_users).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            total = conn.execute(count_stmt).scalar() or 0
        return Page(items=[_row_to_user(r) for r in rows], total=total, request=page)

    def count_users(self, role: Role | None = None, is_active: bool | None = None) -> int:
        conditions = []
        if role is not None:
            conditions.append(_users.c.role == Role(role).value)
        if is_active is not None:
            conditions.append(_users.c.is_active == is_active)
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users).where(*conditions)).scalar()
        return result or 0

    def recent_users(self, limit: int = 5) -> list[User]:
        """Return the most recently registered users, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at.desc()).limit(limit)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Profile / admin mutation
    # ------------------------------------------------------------------

    def update_user(self, user_id: str, **fields) -> User | None:
        """Update mutable fields on an existing user and return the fresh record.

        Accepted fields: name, email, role, is_active. Passwords go through
        change_password() so password_changed_at is never skipped.

        Raises Conflict if a new email belongs to another user.
        Returns None if user_id was not found.
        """
        allowed = {"name", "email", "role", "is_active"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")

        values = {k: v for k, v in fields.items() if v is not None}
        if "email" in values:
            values["email"] = normalize_email(values["email"])
            other = self.get_by_email(values["email"])
            if other is not None and other.id != user_id:
                raise Conflict("Email already in use.")
        if "name" in values:
            values["name"] = values["name"].strip()
        if "role" in values:
            values["role"] = Role(values["role"]).value
        if values:
            values["updated_at"] = _now_iso()
            try:
                with self.engine.connect() as conn:
                    conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
                    conn.commit()
            except IntegrityError as exc:
                raise Conflict("Email already in use.") from exc
        return self.get_by_id(user_id)

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Does NOT touch the user's tasks -- the cascade is explicit and lives in
        admin/service.py, which deletes owned tasks first.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Round-trip a trivial query. Used by the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        is_active=bool(row.is_active),
        last_login=row.last_login,
        password_changed_at=row.password_changed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
