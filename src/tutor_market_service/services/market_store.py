"""SQLite-backed storage for users, tasks, bids, and payments."""

from __future__ import annotations

import contextlib
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

from tutor_market_service.models import TaskStatus

if TYPE_CHECKING:
    from collections.abc import Callable


class DuplicateEntityError(Exception):
    """Raised when inserting an entity whose id (or unique field) already exists."""


class DuplicateEmailError(DuplicateEntityError):
    """Raised when registering a second user with the same email."""


class TaskAlreadyAcceptedError(Exception):
    """Raised when an acceptance loses the race for a task's single accepted bid."""


class PaymentAlreadyPaidError(Exception):
    """Raised when settling a payment that is already paid."""


@dataclass(frozen=True)
class _EntityKind:
    table: str
    id_column: str
    insert_columns: tuple[str, ...]
    select_sql: str
    qualified_id: str
    order_column: str


_TASK_STATUS_SQL = (
    "CASE WHEN t.accepted_bid_id IS NULL THEN 'open' "
    "WHEN p.paid = 1 THEN 'paid' ELSE 'accepted' END AS status"
)

_KINDS: dict[str, _EntityKind] = {
    "users": _EntityKind(
        table="users",
        id_column="user_id",
        insert_columns=("user_id", "name", "email", "role", "password_hash", "registered_at"),
        select_sql=(
            "SELECT user_id, name, email, role, password_hash, registered_at FROM users"
        ),
        qualified_id="user_id",
        order_column="rowid",
    ),
    "tasks": _EntityKind(
        table="tasks",
        id_column="task_id",
        insert_columns=(
            "task_id",
            "student_id",
            "title",
            "description",
            "due_date",
            "budget",
            "accepted_bid_id",
            "created_at",
            "accepted_at",
        ),
        select_sql=(
            "SELECT t.task_id, t.student_id, t.title, t.description, t.due_date, t.budget, "
            "t.accepted_bid_id, t.created_at, t.accepted_at, "
            + _TASK_STATUS_SQL
            + " FROM tasks t LEFT JOIN payments p ON p.task_id = t.task_id"
        ),
        qualified_id="t.task_id",
        order_column="t.rowid",
    ),
    "bids": _EntityKind(
        table="bids",
        id_column="bid_id",
        insert_columns=("bid_id", "task_id", "tutor_id", "amount", "message", "created_at"),
        select_sql="SELECT bid_id, task_id, tutor_id, amount, message, created_at FROM bids",
        qualified_id="bid_id",
        order_column="rowid",
    ),
    "payments": _EntityKind(
        table="payments",
        id_column="payment_id",
        insert_columns=(
            "payment_id",
            "task_id",
            "bid_id",
            "student_id",
            "tutor_id",
            "amount",
            "paid",
            "created_at",
            "paid_at",
            "checkout_ref",
        ),
        select_sql=(
            "SELECT payment_id, task_id, bid_id, student_id, tutor_id, amount, paid, "
            "created_at, paid_at, checkout_ref FROM payments"
        ),
        qualified_id="payment_id",
        order_column="rowid",
    ),
}


class MarketStore:
    """
    Single source of truth for every marketplace entity.

    All access is serialized through one re-entrant lock, so no caller can
    observe a half-applied multi-row write. Entities are returned as fresh
    dicts; callers never hold references into the store.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    registered_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    student_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    due_date TEXT NOT NULL,
                    budget REAL,
                    accepted_bid_id TEXT,
                    created_at TEXT NOT NULL,
                    accepted_at TEXT
                );

                CREATE TABLE IF NOT EXISTS bids (
                    bid_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id),
                    tutor_id TEXT NOT NULL,
                    amount REAL NOT NULL,
                    message TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS payments (
                    payment_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL UNIQUE REFERENCES tasks(task_id),
                    bid_id TEXT NOT NULL REFERENCES bids(bid_id),
                    student_id TEXT NOT NULL,
                    tutor_id TEXT NOT NULL,
                    amount REAL NOT NULL,
                    paid INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    paid_at TEXT,
                    checkout_ref TEXT UNIQUE
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_student_id ON tasks(student_id);
                CREATE INDEX IF NOT EXISTS idx_bids_task_id ON bids(task_id);
                """
            )
            self._db.commit()

    @staticmethod
    def _kind(kind: str) -> _EntityKind:
        try:
            return _KINDS[kind]
        except KeyError:
            msg = f"Unknown entity kind: {kind}"
            raise ValueError(msg) from None

    @staticmethod
    def _row_to_entity(kind: str, row: sqlite3.Row) -> dict[str, Any]:
        entity = {key: row[key] for key in row.keys()}  # noqa: SIM118
        if kind == "payments":
            entity["paid"] = bool(entity["paid"])
        return entity

    def _select_one(self, kind: str, where_sql: str, params: tuple[object, ...]) -> dict[str, Any] | None:
        spec = self._kind(kind)
        with self._lock:
            row = self._db.execute(f"{spec.select_sql} WHERE {where_sql}", params).fetchone()  # nosec B608
        if row is None:
            return None
        return self._row_to_entity(kind, row)

    # ------------------------------------------------------------------
    # Generic entity access
    # ------------------------------------------------------------------

    def get(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        """Fetch one entity by id, or None when it does not exist."""
        spec = self._kind(kind)
        return self._select_one(kind, f"{spec.qualified_id} = ?", (entity_id,))

    def list_entities(
        self,
        kind: str,
        predicate: Callable[[dict[str, Any]], bool] | None = None,
        *,
        newest_first: bool = False,
    ) -> list[dict[str, Any]]:
        """List entities of a kind in insertion order, optionally filtered."""
        spec = self._kind(kind)
        direction = "DESC" if newest_first else "ASC"
        query = f"{spec.select_sql} ORDER BY {spec.order_column} {direction}"  # nosec B608
        with self._lock:
            rows = self._db.execute(query).fetchall()
        entities = [self._row_to_entity(kind, row) for row in rows]
        if predicate is None:
            return entities
        return [entity for entity in entities if predicate(entity)]

    def put(self, kind: str, entity: dict[str, Any]) -> None:
        """Insert a new entity. Entities are never overwritten through put()."""
        spec = self._kind(kind)
        columns = ", ".join(spec.insert_columns)
        placeholders = ", ".join("?" for _ in spec.insert_columns)
        values = tuple(entity[column] for column in spec.insert_columns)
        query = f"INSERT INTO {spec.table} ({columns}) VALUES ({placeholders})"  # nosec B608

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(query, values)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                error_msg = str(exc).lower()
                if "users.email" in error_msg:
                    raise DuplicateEmailError(f"Email already registered: {entity['email']}") from exc
                if "unique" in error_msg:
                    raise DuplicateEntityError(
                        f"A {kind} entity with {spec.id_column}={entity[spec.id_column]} already exists"
                    ) from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    # ------------------------------------------------------------------
    # Lookups by secondary keys
    # ------------------------------------------------------------------

    def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        """Fetch a user by email."""
        return self._select_one("users", "email = ?", (email,))

    def get_payment_for_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch the payment of an accepted task, or None while it is open."""
        return self._select_one("payments", "task_id = ?", (task_id,))

    def get_payment_by_checkout_ref(self, checkout_ref: str) -> dict[str, Any] | None:
        """Fetch the payment a provider checkout was opened for."""
        return self._select_one("payments", "checkout_ref = ?", (checkout_ref,))

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def commit_acceptance(
        self,
        task_id: str,
        bid_id: str,
        accepted_at: str,
        payment: dict[str, Any],
    ) -> None:
        """
        Mark the task accepted and create its payment in one transaction.

        The task update only matches while accepted_bid_id is still NULL, and
        payments.task_id is unique, so of two racing acceptances exactly one
        commits. The loser sees TaskAlreadyAcceptedError and nothing changes.
        """
        spec = self._kind("payments")
        columns = ", ".join(spec.insert_columns)
        placeholders = ", ".join("?" for _ in spec.insert_columns)
        values = tuple(payment[column] for column in spec.insert_columns)

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                cursor = self._db.execute(
                    "UPDATE tasks SET accepted_bid_id = ?, accepted_at = ? "
                    "WHERE task_id = ? AND accepted_bid_id IS NULL",
                    (bid_id, accepted_at, task_id),
                )
                if cursor.rowcount != 1:
                    self._db.execute("ROLLBACK")
                    raise TaskAlreadyAcceptedError(f"Task {task_id} already has an accepted bid")
                self._db.execute(
                    f"INSERT INTO payments ({columns}) VALUES ({placeholders})",  # nosec B608
                    values,
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                if "payments.task_id" in str(exc).lower():
                    raise TaskAlreadyAcceptedError(f"Task {task_id} already has a payment") from exc
                raise
            except TaskAlreadyAcceptedError:
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def commit_settlement(self, payment_id: str, paid_at: str) -> None:
        """Flip a payment to paid. Only an unpaid payment can be settled."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE payments SET paid = 1, paid_at = ? WHERE payment_id = ? AND paid = 0",
                (paid_at, payment_id),
            )
            self._db.commit()
        if cursor.rowcount != 1:
            raise PaymentAlreadyPaidError(f"Payment {payment_id} is already paid")

    def attach_checkout_ref(self, payment_id: str, checkout_ref: str) -> bool:
        """Record the provider checkout reference once. Returns False if one is already set."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE payments SET checkout_ref = ? WHERE payment_id = ? AND checkout_ref IS NULL",
                (checkout_ref, payment_id),
            )
            self._db.commit()
        return int(cursor.rowcount) == 1

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by derived lifecycle status."""
        counts = {status.value: 0 for status in TaskStatus}
        with self._lock:
            rows = self._db.execute(
                "SELECT status, COUNT(*) FROM ("
                "SELECT " + _TASK_STATUS_SQL + " FROM tasks t "
                "LEFT JOIN payments p ON p.task_id = t.task_id"
                ") GROUP BY status"
            ).fetchall()
        for row in rows:
            counts[str(row[0])] = int(row[1])
        return counts

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
