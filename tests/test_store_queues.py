# tests/test_store_queues.py
from __future__ import annotations

import sqlite3

import pytest

from leadsync.exceptions import ConfigurationError
from leadsync.store import ContactStore, TrustedPredicate

DECL = {"firstname": "text", "score": "integer"}


def _seed(store: ContactStore, clock, rows) -> None:
    store.ensure_fields(DECL)
    for row in rows:
        store.merge([row], DECL)
        clock.advance(1)


# ---------------------------------- pending ----------------------------------------


def test_pending_contains_only_unverified(store, clock) -> None:
    _seed(store, clock, [{"email": "a@x.com"}, {"email": "b@x.com"}, {"email": "c@x.com"}])
    store.mark_verified("b@x.com", "invalid")

    assert sorted(store.fetch_pending(10)) == ["a@x.com", "c@x.com"]


def test_pending_default_order_is_newest_import_first(store, clock) -> None:
    _seed(store, clock, [{"email": "old@x.com"}, {"email": "mid@x.com"}, {"email": "new@x.com"}])

    assert store.fetch_pending(10) == ["new@x.com", "mid@x.com", "old@x.com"]
    assert store.fetch_pending(2, "last_import", "asc") == ["old@x.com", "mid@x.com"]


def test_pending_orders_by_declared_field(store, clock) -> None:
    _seed(
        store,
        clock,
        [
            {"email": "a@x.com", "score": 5},
            {"email": "b@x.com", "score": 50},
            {"email": "c@x.com", "score": 7},
        ],
    )
    # Numeric ordering, not lexicographic.
    assert store.fetch_pending(10, "score", "DESC") == ["b@x.com", "c@x.com", "a@x.com"]


def test_pending_applies_trusted_predicate(store, clock) -> None:
    _seed(
        store,
        clock,
        [{"email": "a@x.com", "score": 1}, {"email": "b@x.com", "score": 9}],
    )
    where = TrustedPredicate.from_config("score > 3")

    assert store.fetch_pending(10, where=where) == ["b@x.com"]


def test_blank_predicate_is_ignored() -> None:
    assert TrustedPredicate.from_config("   ") is None
    assert TrustedPredicate.from_config(None) is None


@pytest.mark.parametrize("order_by", ["last_import; DROP TABLE contacts", "1col", "a b"])
def test_bad_order_field_rejected(store, order_by) -> None:
    with pytest.raises(ConfigurationError):
        store.fetch_pending(10, order_by, "DESC")


@pytest.mark.parametrize("order_dir", ["up", "", "DESC;"])
def test_bad_order_direction_rejected(store, order_dir) -> None:
    with pytest.raises(ConfigurationError):
        store.fetch_pending(10, "last_import", order_dir)


def test_unknown_order_column_fails_in_sqlite(store) -> None:
    with pytest.raises(sqlite3.OperationalError):
        store.fetch_pending(10, "no_such_column", "ASC")


@pytest.mark.parametrize("limit", [0, -1, True])
def test_bad_limit_rejected(store, limit) -> None:
    with pytest.raises(ConfigurationError):
        store.fetch_pending(limit)


# ---------------------------------- export -----------------------------------------


def test_exportable_requires_valid_status(store, clock) -> None:
    _seed(store, clock, [{"email": "a@x.com"}, {"email": "b@x.com"}, {"email": "c@x.com"}])
    store.mark_verified("a@x.com", "valid")
    store.mark_verified("b@x.com", "catchall")

    rows = store.fetch_eligible_for_export(10)
    assert [r["email"] for r in rows] == ["a@x.com"]
    assert "firstname" in rows[0]


def test_exported_contact_leaves_queue_until_changed(store, clock) -> None:
    _seed(store, clock, [{"email": "a@x.com", "firstname": "A"}])
    store.mark_verified("a@x.com", "valid")
    clock.advance(1)
    store.mark_exported("a@x.com")

    assert store.fetch_eligible_for_export(10) == []

    # Re-importing the same data does not re-queue it.
    clock.advance(1)
    store.merge([{"email": "a@x.com", "firstname": "A"}], DECL)
    assert store.fetch_eligible_for_export(10) == []

    # A real change does.
    clock.advance(1)
    store.merge([{"email": "a@x.com", "firstname": "Ana"}], DECL)
    rows = store.fetch_eligible_for_export(10)
    assert [r["firstname"] for r in rows] == ["Ana"]


def test_export_predicate_is_additional(store, clock) -> None:
    _seed(
        store,
        clock,
        [{"email": "a@x.com", "score": 1}, {"email": "b@x.com", "score": 9}],
    )
    store.mark_verified("a@x.com", "valid")
    store.mark_verified("b@x.com", "valid")

    rows = store.fetch_eligible_for_export(10, where=TrustedPredicate("score < 5"))
    assert [r["email"] for r in rows] == ["a@x.com"]


# ---------------------------------- marks ------------------------------------------


def test_marks_return_affected_rows(store, clock) -> None:
    _seed(store, clock, [{"email": "a@x.com"}])

    assert store.mark_verified("A@X.COM", "valid") == 1
    assert store.mark_exported("a@x.com") == 1
    assert store.mark_verified("ghost@x.com", "valid") == 0
    assert store.mark_exported("ghost@x.com") == 0


def test_mark_verified_stamps_last_verify(store, clock) -> None:
    _seed(store, clock, [{"email": "a@x.com"}])
    store.mark_verified("a@x.com", "unknown")

    row = store.get("a@x.com")
    assert row["verify_status"] == "unknown"
    assert row["last_verify"] is not None


# ---------------------------------- statistics -------------------------------------


def test_statistics(store, clock) -> None:
    _seed(
        store,
        clock,
        [{"email": f"u{i}@x.com"} for i in range(6)],
    )
    store.mark_verified("u0@x.com", "valid")
    store.mark_verified("u1@x.com", "valid")
    store.mark_verified("u2@x.com", "valid")
    store.mark_verified("u3@x.com", "invalid")
    clock.advance(1)
    store.mark_exported("u0@x.com")

    stats = store.statistics()
    assert stats.total == 6
    assert stats.pending == 2
    assert stats.verified == 4
    assert list(stats.by_status.items()) == [("valid", 3), ("invalid", 1)]
    assert stats.exported == 1
    assert stats.exportable == 2
    assert stats.as_dict()["verified"] == 4


def test_read_only_store_rejects_writes(tmp_path, clock) -> None:
    path = tmp_path / "state.db"
    with ContactStore(path, clock=clock) as writer:
        writer.merge([{"email": "a@x.com"}], {})

    with ContactStore(path, read_only=True) as reader:
        assert reader.statistics().total == 1
        with pytest.raises(sqlite3.OperationalError):
            reader.mark_verified("a@x.com", "valid")


def test_statistics_closes_its_read_transaction(store, clock) -> None:
    _seed(store, clock, [{"email": "a@x.com"}])

    assert store.statistics().total == 1
    assert store.connection.in_transaction is False
    # Writers are not left blocked behind the snapshot.
    assert store.merge([{"email": "b@x.com"}], DECL) == 1
    assert store.statistics().total == 2


def test_read_only_missing_database_has_no_side_effects(tmp_path) -> None:
    path = tmp_path / "nowhere" / "state.db"

    with ContactStore(path, read_only=True) as reader:
        stats = reader.statistics()

    assert (stats.total, stats.pending, stats.exported, stats.exportable) == (0, 0, 0, 0)
    assert stats.by_status == {}
    assert not path.parent.exists()


def test_read_only_database_without_table_is_left_untouched(tmp_path) -> None:
    path = tmp_path / "state.db"
    path.touch()

    with ContactStore(path, read_only=True) as reader:
        assert reader.statistics().total == 0

    assert path.stat().st_size == 0
