"""
auth/store.py -- SQLAlchemy Core persistence layer for members.

Pattern: Repository + Data Mapper.
MemberStore is the repository; _row_to_member is the mapper. Route, resolver,
and directory code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  api_key is UNIQUE in SQL. (provider, subject) is UNIQUE on the
  external_logins table -- unlike a nullable column pair on members, a
  separate link table never holds NULLs, so SQLite enforces it correctly.

Deleting a member removes its external login links in the same transaction.
Access credentials are stateless, so every credential still in circulation
for the deleted member simply stops resolving.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine

from auth.models import ROLE_USER, ExternalLogin, Member

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_members = Table(
    "members",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("nickname", String(255), nullable=False),
    Column("hashed_password", Text),  # NULL for external-login-only members
    Column("roles", String(255), nullable=False, server_default=ROLE_USER),  # comma-separated
    Column("api_key", String(80), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_external_logins = Table(
    "external_logins",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("member_id", Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
    Column("provider", String(30), nullable=False),
    Column("subject", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("provider", "subject", name="uq_external_login"),
)


# ---------------------------------------------------------------------------
# SQLite connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode_roles(roles) -> str:
    return ",".join(sorted(roles))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MemberStore:
    """Repository for Member entities and their external login links.

    Usage:
        store = MemberStore("sqlite:///gatekeeper.db")
        member_id = store.create_member(Member(username="admin", nickname="Admin", api_key=generate_api_key()))
        member = store.get_by_id(member_id)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Member queries
    # ------------------------------------------------------------------

    def has_members(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_members)).scalar()
        return (result or 0) > 0

    def create_member(self, member: Member) -> int:
        """Insert a new member and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or API key is
        already taken.
        """
        with self.engine.begin() as conn:
            return self._insert_member(conn, member)

    def get_by_id(self, member_id: int) -> Member | None:
        """Look up a member by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_members.select().where(_members.c.id == member_id)).fetchone()
            return self._map(conn, row)

    def get_by_username(self, username: str) -> Member | None:
        """Look up a member by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_members.select().where(_members.c.username == username)).fetchone()
            return self._map(conn, row)

    def get_by_api_key(self, api_key: str) -> Member | None:
        """Look up a member by API key. O(1) via the UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_members.select().where(_members.c.api_key == api_key)).fetchone()
            return self._map(conn, row)

    def get_by_external_login(self, provider: str, subject: str) -> Member | None:
        """Look up the member linked to a (provider, subject) pair."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _members.select()
                .join(_external_logins, _external_logins.c.member_id == _members.c.id)
                .where((_external_logins.c.provider == provider) & (_external_logins.c.subject == subject))
            ).fetchone()
            return self._map(conn, row)

    def create_external_member(self, member: Member, provider: str, subject: str) -> int:
        """Insert a member and link it to (provider, subject) atomically.

        Raises sqlalchemy.exc.IntegrityError if the pair is already linked --
        callers treat that as a concurrent first login and re-read.
        """
        with self.engine.begin() as conn:
            member_id = self._insert_member(conn, member)
            self._insert_link(conn, member_id, provider, subject)
        return member_id

    def update_nickname(self, member_id: int, nickname: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_members.update().where(_members.c.id == member_id).values(nickname=nickname))
        return result.rowcount > 0

    def rotate_api_key(self, member_id: int, new_key: str) -> bool:
        """Replace a member's API key. The old key stops resolving immediately."""
        with self.engine.begin() as conn:
            result = conn.execute(_members.update().where(_members.c.id == member_id).values(api_key=new_key))
        return result.rowcount > 0

    def delete_member(self, member_id: int) -> bool:
        """Permanently delete a member and its external links.

        Returns True if deleted, False if not found.
        """
        with self.engine.begin() as conn:
            conn.execute(_external_logins.delete().where(_external_logins.c.member_id == member_id))
            result = conn.execute(_members.delete().where(_members.c.id == member_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert_member(self, conn: Connection, member: Member) -> int:
        result = conn.execute(
            _members.insert().values(
                username=member.username,
                nickname=member.nickname,
                hashed_password=member.hashed_password,
                roles=_encode_roles(member.roles),
                api_key=member.api_key,
                created_at=_now_iso(),
            )
        )
        return result.inserted_primary_key[0]

    def _insert_link(self, conn: Connection, member_id: int, provider: str, subject: str) -> None:
        conn.execute(
            _external_logins.insert().values(
                member_id=member_id,
                provider=provider,
                subject=subject,
                created_at=_now_iso(),
            )
        )

    def _map(self, conn: Connection, row) -> Member | None:
        if row is None:
            return None
        links = conn.execute(
            select(_external_logins.c.provider, _external_logins.c.subject)
            .where(_external_logins.c.member_id == row.id)
            .order_by(_external_logins.c.id)
        ).fetchall()
        return _row_to_member(row, [ExternalLogin(provider=p, subject=s) for p, s in links])


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_member(row, external_logins: list[ExternalLogin]) -> Member:
    roles = frozenset(r for r in (row.roles or "").split(",") if r)
    return Member(
        id=row.id,
        username=row.username,
        nickname=row.nickname,
        hashed_password=row.hashed_password,
        roles=roles,
        api_key=row.api_key,
        external_logins=external_logins,
        created_at=row.created_at,
    )
