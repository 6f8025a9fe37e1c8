# leadsync/store.py
"""
Contact store: a single SQLite table with one row per normalized email.

Columns:
  email          TEXT COLLATE NOCASE PRIMARY KEY
  last_import    when an import last *changed* a data field
  last_verify    when verify_status was last assigned
  verify_status  opaque provider label; NULL means "awaiting verification"
  last_export    when the contact was last published to the CRM
  <dynamic>      data fields declared by sources (TEXT / INTEGER / REAL)

Key decisions:

- Schema evolves additively via ALTER TABLE ADD COLUMN; nothing is dropped.
- merge() is one transaction per batch; mark_*() are single autocommitted
  statements so a crash mid-stage keeps already-processed contacts marked.
- WAL journal so the stats command can read while a stage is writing.
- Timestamps are ISO-8601 UTC text with microseconds, so string comparison
  (last_import > last_export) is chronological.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from leadsync.exceptions import ConfigurationError
from leadsync.schema import (
    EMAIL_FIELD,
    SQLITE_TYPES,
    coerce_value,
    normalize_declaration,
    normalize_email,
    validate_identifier,
)

log = logging.getLogger(__name__)

STATUS_VALID = "valid"

EXPORTABLE_CLAUSE = (
    f"verify_status = '{STATUS_VALID}' "
    "AND (last_export IS NULL OR last_import > last_export)"
)

_DIRECTIONS = {"ASC", "DESC"}


@dataclass(frozen=True)
class TrustedPredicate:
    """
    A raw SQL boolean fragment ANDed into queue queries.

    Trust boundary: this value must only ever be built from deployment
    configuration (config.yaml), never from request or row data. It is
    passed through verbatim; no sanitization is attempted here.
    """

    sql: str

    @classmethod
    def from_config(cls, raw: str | None) -> TrustedPredicate | None:
        if raw is None:
            return None
        text = str(raw).strip()
        return cls(text) if text else None


@dataclass
class StoreStatistics:
    total: int
    pending: int
    by_status: dict[str, int] = field(default_factory=dict)
    exported: int = 0
    exportable: int = 0

    @property
    def verified(self) -> int:
        return self.total - self.pending

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "verified": self.verified,
            "by_status": dict(self.by_status),
            "exported": self.exported,
            "exportable": self.exportable,
        }


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    else:
        value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def normalize_direction(direction: str) -> str:
    normalized = str(direction or "").strip().upper()
    if normalized not in _DIRECTIONS:
        raise ConfigurationError(
            f"Order direction must be ASC or DESC; got {direction!r}."
        )
    return normalized


def _validate_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ConfigurationError(f"Batch size must be a positive integer; got {limit!r}.")
    return limit


def _extra_clause(where: TrustedPredicate | None) -> str:
    if where is None or not where.sql:
        return ""
    return f" AND ({where.sql})"


class ContactStore:
    """
    Owns the SQLite connection plus change detection and queue derivation.

    Usage:
        with ContactStore("data/state.db") as store:
            store.ensure_fields({"firstname": "text"})
            store.merge(rows, {"firstname": "text"})
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        clock: Callable[[], datetime] | None = None,
        read_only: bool = False,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.db_path = str(db_path)
        self._clock = clock or utc_now
        self.read_only = read_only

        if read_only:
            self._conn = self._open_read_only(int(busy_timeout_ms))
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Autocommit: single-row marks are their own transactions; merge()
        # opens an explicit one.
        self._conn = sqlite3.connect(self.db_path, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        self._initialize()

    def _open_read_only(self, busy_timeout_ms: int) -> sqlite3.Connection:
        """
        Open without touching the filesystem. A missing database (or one that
        has no contacts table yet) reads as an empty in-memory store.
        """
        if self.db_path != ":memory:" and Path(self.db_path).is_file():
            conn = sqlite3.connect(self.db_path, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
            conn.execute("PRAGMA query_only=ON")
            has_table = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'contacts'"
            ).fetchone()
            if has_table:
                return conn
            conn.close()

        conn = sqlite3.connect(":memory:", isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._conn = conn
        self._initialize()
        conn.execute("PRAGMA query_only=ON")
        return conn

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> ContactStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        self._conn.close()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def _now(self) -> str:
        return format_ts(self._clock())

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS contacts (
                email         TEXT COLLATE NOCASE PRIMARY KEY NOT NULL,
                last_import   TEXT DEFAULT NULL,
                last_verify   TEXT DEFAULT NULL,
                verify_status TEXT DEFAULT NULL,
                last_export   TEXT DEFAULT NULL
            )
            """
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_contacts_verify_status ON contacts (verify_status)"
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_contacts_last_import ON contacts (last_import)"
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_contacts_last_export ON contacts (last_export)"
        )

    def existing_fields(self) -> list[str]:
        """Names of all current columns of the contacts table, in table order."""
        return [row[1] for row in self._conn.execute("PRAGMA table_info(contacts)")]

    def ensure_fields(self, declared: Mapping[str, str]) -> list[str]:
        """
        Add any declared data field that does not exist yet (NULL default).

        Idempotent, and column names match case-insensitively as in SQLite.
        Validates every name and type before altering anything,
        so a bad declaration leaves the schema untouched. Returns the names
        that were added by this call.
        """
        types = normalize_declaration(declared)
        existing = {f.lower() for f in self.existing_fields()}
        added: list[str] = []
        for name, type_ in types.items():
            if name.lower() in existing:
                continue
            self._conn.execute(
                f'ALTER TABLE contacts ADD COLUMN "{name}" {SQLITE_TYPES[type_]} DEFAULT NULL'
            )
            added.append(name)
        if added:
            log.info("contacts schema extended with fields: %s", ", ".join(added))
        return added

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def _merge_sql(self, data_cols: list[str]) -> str:
        insert_cols = [EMAIL_FIELD, *data_cols, "last_import"]
        values = [f":p_{c}" for c in (EMAIL_FIELD, *data_cols)] + [":now_ts"]

        if data_cols:
            changed = " OR ".join(f'"{c}" IS NOT excluded."{c}"' for c in data_cols)
            updates = [f'"{c}" = excluded."{c}"' for c in data_cols]
            updates.append(
                f'"last_import" = CASE WHEN {changed} THEN excluded."last_import" '
                'ELSE "last_import" END'
            )
        else:
            # Nothing declared, nothing can change.
            updates = ['"last_import" = "last_import"']

        return (
            "INSERT INTO contacts ({cols}) VALUES ({vals}) "
            "ON CONFLICT(email) DO UPDATE SET {updates}"
        ).format(
            cols=", ".join(f'"{c}"' for c in insert_cols),
            vals=", ".join(values),
            updates=", ".join(updates),
        )

    def merge(self, rows: Iterable[Mapping[str, Any]], declared_types: Mapping[str, str]) -> int:
        """
        Upsert rows keyed by email, touching only the declared fields.

        - New email: insert declared fields, last_import = now.
        - Known email: overwrite declared fields; last_import = now only if at
          least one of them differs from the stored value (IS NOT semantics,
          so NULL == NULL and NULL != value).

        The whole batch is one transaction. Returns the number of rows applied.
        """
        types = normalize_declaration(declared_types)
        data_cols = list(types)
        sql = self._merge_sql(data_cols)
        now = self._now()

        applied = 0
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            for idx, row in enumerate(rows):
                raw_email = row.get(EMAIL_FIELD)
                email = normalize_email(str(raw_email)) if raw_email is not None else ""
                if not email:
                    raise ValueError(f"Row {idx} has no email value.")

                params: dict[str, Any] = {"p_email": email, "now_ts": now}
                for col in data_cols:
                    params[f"p_{col}"] = coerce_value(row.get(col), types[col])
                self._conn.execute(sql, params)
                applied += 1
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")
        return applied

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    def _order_clause(self, order_by: str, order_dir: str) -> str:
        # Format check only; an unknown column fails in SQLite with a clear message.
        column = validate_identifier(order_by, what="order field")
        direction = normalize_direction(order_dir)
        return f'ORDER BY "{column}" {direction}, email ASC'

    def fetch_pending(
        self,
        limit: int,
        order_by: str = "last_import",
        order_dir: str = "DESC",
        where: TrustedPredicate | None = None,
    ) -> list[str]:
        """Emails awaiting verification (verify_status IS NULL), ordered and capped."""
        order = self._order_clause(order_by, order_dir)
        sql = (
            f"SELECT email FROM contacts WHERE verify_status IS NULL{_extra_clause(where)} "
            f"{order} LIMIT ?"
        )
        cur = self._conn.execute(sql, (_validate_limit(limit),))
        return [row["email"] for row in cur.fetchall()]

    def fetch_eligible_for_export(
        self,
        limit: int,
        order_by: str = "last_import",
        order_dir: str = "DESC",
        where: TrustedPredicate | None = None,
    ) -> list[dict[str, Any]]:
        """
        Full rows that are valid and changed since their last export
        (or never exported), ordered and capped.
        """
        order = self._order_clause(order_by, order_dir)
        sql = (
            f"SELECT * FROM contacts WHERE {EXPORTABLE_CLAUSE}{_extra_clause(where)} "
            f"{order} LIMIT ?"
        )
        cur = self._conn.execute(sql, (_validate_limit(limit),))
        return [dict(row) for row in cur.fetchall()]

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def mark_verified(self, email: str, status: str) -> int:
        """Record a verification result. Returns affected rows (0 if unknown email)."""
        cur = self._conn.execute(
            "UPDATE contacts SET verify_status = ?, last_verify = ? WHERE email = ?",
            (str(status), self._now(), normalize_email(email)),
        )
        return cur.rowcount

    def mark_exported(self, email: str) -> int:
        """Stamp last_export. Returns affected rows (0 if unknown email)."""
        cur = self._conn.execute(
            "UPDATE contacts SET last_export = ? WHERE email = ?",
            (self._now(), normalize_email(email)),
        )
        return cur.rowcount

    # ------------------------------------------------------------------
    # Read-only aggregates
    # ------------------------------------------------------------------

    def get(self, email: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT * FROM contacts WHERE email = ?", (normalize_email(email),)
        ).fetchone()
        return dict(row) if row is not None else None

    def _count(self, sql: str) -> int:
        return int(self._conn.execute(sql).fetchone()[0])

    def statistics(self) -> StoreStatistics:
        """
        Aggregate counters for the stats command. Pure read.

        All counters come from one read transaction, so they describe the
        same snapshot even while a stage is committing (WAL readers do not
        block writers).
        """
        self._conn.execute("BEGIN")
        try:
            return self._collect_statistics()
        finally:
            self._conn.execute("COMMIT")

    def _collect_statistics(self) -> StoreStatistics:
        by_status: dict[str, int] = {}
        cur = self._conn.execute(
            """
            SELECT verify_status, COUNT(*) AS cnt
            FROM contacts
            WHERE verify_status IS NOT NULL
            GROUP BY verify_status
            ORDER BY cnt DESC, verify_status ASC
            """
        )
        for row in cur.fetchall():
            by_status[row["verify_status"]] = int(row["cnt"])

        return StoreStatistics(
            total=self._count("SELECT COUNT(*) FROM contacts"),
            pending=self._count("SELECT COUNT(*) FROM contacts WHERE verify_status IS NULL"),
            by_status=by_status,
            exported=self._count("SELECT COUNT(*) FROM contacts WHERE last_export IS NOT NULL"),
            exportable=self._count(f"SELECT COUNT(*) FROM contacts WHERE {EXPORTABLE_CLAUSE}"),
        )


__all__ = [
    "ContactStore",
    "StoreStatistics",
    "TrustedPredicate",
    "STATUS_VALID",
    "EXPORTABLE_CLAUSE",
    "format_ts",
    "normalize_direction",
    "utc_now",
]
