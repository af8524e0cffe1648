"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user is
the mapper. Service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  password_hash is read only inside verify_credentials() and never mapped onto
  the User dataclass.

Transactions:
  Every write method accepts an optional conn. Without one it opens and commits
  its own transaction; with one it joins the caller's, so an email change and
  the verification code that replaces the old one commit or roll back
  together (see users/service.py).

  On SQLite the engine emits BEGIN IMMEDIATE for each transaction. Writers take
  the database lock up front and wait on the busy timeout, instead of starting
  as readers and failing when they try to upgrade.

Errors:
  SQLAlchemyError never leaves this module. It becomes OperationFailed (logged
  with traceback) or, for unique-email violations, AlreadyExists.

Layer rule: no imports from api/, users/, or mail/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import AlreadyExists, NotFound, OperationFailed, WrongCredentials
from auth.models import User, UserRole
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password

logger = logging.getLogger("nubereats.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False),
    Column("verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# UNIQUE(user_id) makes "one live code per user" a database invariant rather
# than a convention of the issuing flow.
verification_codes_table = Table(
    "verification_codes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(64), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _on_sqlite_connect(dbapi_conn, connection_record) -> None:
    """Hand transaction control to SQLAlchemy and enable WAL.

    isolation_level=None stops pysqlite from emitting its own deferred BEGIN;
    _on_sqlite_begin() emits BEGIN IMMEDIATE instead. WAL lets readers proceed
    while a write is in progress. Set per connection because SQLite PRAGMAs
    are not inherited by new connections from the pool.
    """
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _on_sqlite_begin(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(db_url: str) -> Engine:
    """Build the engine shared by UserStore and VerificationLedger."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _on_sqlite_connect)
        event.listen(engine, "begin", _on_sqlite_begin)
    return engine


@contextmanager
def scoped_connection(engine: Engine, conn: Connection | None = None) -> Iterator[Connection]:
    """Yield conn if the caller already holds a transaction, else open one.

    SQLAlchemyError raised anywhere inside the block (including on commit) is
    logged and re-raised as OperationFailed.
    """
    try:
        if conn is not None:
            yield conn
        else:
            with engine.begin() as new_conn:
                yield new_conn
    except SQLAlchemyError as exc:
        logger.exception("Database operation failed")
        raise OperationFailed() from exc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User accounts and their credentials.

    Usage:
        store = UserStore("sqlite:///nubereats.db")
        user_id = store.register("a@x.com", "pw1", UserRole.owner)
        store.verify_credentials("a@x.com", "pw1")  # -> user_id
        store.close()
    """

    def __init__(self, db_url: str, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
        self.engine: Engine = create_db_engine(db_url)
        self.bcrypt_rounds = bcrypt_rounds
        # Unknown-email logins check against this so they cost the same as a
        # wrong password at the configured rounds [C1].
        self._dummy_hash = hash_password("nubereats_timing_dummy", bcrypt_rounds)
        metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run several store/ledger calls as one atomic unit.

        Usage:
            with store.transaction() as conn:
                store.update_email(user_id, email, conn=conn)
                ledger.issue(user_id, conn=conn)
        """
        with scoped_connection(self.engine) as conn:
            yield conn

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int, *, conn: Connection | None = None) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with scoped_connection(self.engine, conn) as c:
            row = c.execute(users_table.select().where(users_table.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str, *, conn: Connection | None = None) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with scoped_connection(self.engine, conn) as c:
            row = c.execute(users_table.select().where(users_table.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User:
        """Like get_by_id(), but raises NotFound when the user is absent."""
        user = self.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found.")
        return user

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, role: UserRole, *, conn: Connection | None = None) -> int:
        """Insert a new user and return its assigned id.

        Raises AlreadyExists if the email is taken. The up-front lookup gives the
        common case a clean answer; the UNIQUE constraint catches the race where
        two requests register the same email at once [M1].
        """
        password_hash = hash_password(password, self.bcrypt_rounds)
        now = now_iso()
        with scoped_connection(self.engine, conn) as c:
            if self.get_by_email(email, conn=c) is not None:
                raise AlreadyExists()
            try:
                result = c.execute(
                    users_table.insert().values(
                        email=email,
                        password_hash=password_hash,
                        role=UserRole(role).value,
                        verified=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
            except IntegrityError as exc:
                raise AlreadyExists() from exc
            user_id = result.inserted_primary_key[0]
        logger.info("Registered user %s", user_id)
        return user_id

    def verify_credentials(self, email: str, password: str) -> int:
        """Return the user id if email and password match.

        Raises NotFound for an unknown email and WrongCredentials for a bad
        password. bcrypt runs in both cases (against a dummy hash of the same
        cost for unknown emails) so timing does not separate them [C1].
        """
        with scoped_connection(self.engine) as c:
            row = c.execute(
                select(users_table.c.id, users_table.c.password_hash).where(users_table.c.email == email)
            ).fetchone()
        if row is None:
            verify_password(password, self._dummy_hash)
            raise NotFound("User does not exist.")
        if not verify_password(password, row.password_hash):
            raise WrongCredentials()
        return row.id

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_email(self, user_id: int, new_email: str, *, conn: Connection | None = None) -> None:
        """Change the email and reset verified to False.

        Does not touch verification codes. Callers that need the old code
        invalidated must issue a new one in the same transaction.
        """
        with scoped_connection(self.engine, conn) as c:
            try:
                result = c.execute(
                    users_table.update()
                    .where(users_table.c.id == user_id)
                    .values(email=new_email, verified=0, updated_at=now_iso())
                )
            except IntegrityError as exc:
                raise AlreadyExists("Email is already in use.") from exc
            if result.rowcount == 0:
                raise NotFound("User not found.")

    def update_password(self, user_id: int, new_password: str, *, conn: Connection | None = None) -> None:
        """Replace the stored hash. The current password is not re-checked."""
        password_hash = hash_password(new_password, self.bcrypt_rounds)
        with scoped_connection(self.engine, conn) as c:
            result = c.execute(
                users_table.update()
                .where(users_table.c.id == user_id)
                .values(password_hash=password_hash, updated_at=now_iso())
            )
            if result.rowcount == 0:
                raise NotFound("User not found.")

    def mark_verified(self, user_id: int, *, conn: Connection | None = None) -> None:
        with scoped_connection(self.engine, conn) as c:
            result = c.execute(
                users_table.update().where(users_table.c.id == user_id).values(verified=1, updated_at=now_iso())
            )
            if result.rowcount == 0:
                raise NotFound("User not found.")

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        role=UserRole(row.role),
        verified=bool(row.verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
