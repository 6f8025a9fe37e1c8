# tests/test_store_merge.py
from __future__ import annotations

import pytest

from leadsync.store import ContactStore, format_ts

DECL = {"firstname": "text", "orders": "integer"}


def _prepare(store: ContactStore, decl=DECL) -> None:
    store.ensure_fields(decl)


def test_new_email_inserted_with_last_import(store, clock) -> None:
    _prepare(store)
    applied = store.merge([{"email": "Ana@Example.com ", "firstname": "Ana", "orders": "3"}], DECL)

    assert applied == 1
    row = store.get("ana@example.com")
    assert row is not None
    assert row["email"] == "ana@example.com"
    assert row["firstname"] == "Ana"
    assert row["orders"] == 3
    assert row["last_import"] == format_ts(clock())
    assert row["verify_status"] is None
    assert row["last_export"] is None


def test_identical_merge_keeps_last_import(store, clock) -> None:
    _prepare(store)
    rows = [{"email": "a@x.com", "firstname": "A", "orders": 1}]
    store.merge(rows, DECL)
    first = store.get("a@x.com")["last_import"]

    clock.advance(60)
    store.merge(rows, DECL)

    assert store.get("a@x.com")["last_import"] == first


def test_changed_value_advances_last_import(store, clock) -> None:
    _prepare(store)
    store.merge([{"email": "a@x.com", "firstname": "A", "orders": 1}], DECL)
    first = store.get("a@x.com")["last_import"]

    clock.advance(60)
    store.merge([{"email": "a@x.com", "firstname": "A", "orders": 2}], DECL)

    row = store.get("a@x.com")
    assert row["orders"] == 2
    assert row["last_import"] > first
    assert row["last_import"] == format_ts(clock())


@pytest.mark.parametrize(
    ("before", "after"),
    [(None, "Ana"), ("Ana", None)],
    ids=["null-to-value", "value-to-null"],
)
def test_null_transitions_count_as_change(store, clock, before, after) -> None:
    decl = {"firstname": "text"}
    _prepare(store, decl)
    store.merge([{"email": "a@x.com", "firstname": before}], decl)
    first = store.get("a@x.com")["last_import"]

    clock.advance(1)
    store.merge([{"email": "a@x.com", "firstname": after}], decl)

    assert store.get("a@x.com")["last_import"] > first


def test_null_to_null_is_not_a_change(store, clock) -> None:
    decl = {"firstname": "text"}
    _prepare(store, decl)
    store.merge([{"email": "a@x.com", "firstname": None}], decl)
    first = store.get("a@x.com")["last_import"]

    clock.advance(1)
    store.merge([{"email": "a@x.com"}], decl)

    assert store.get("a@x.com")["last_import"] == first


def test_case_variants_merge_into_one_record(store) -> None:
    _prepare(store)
    store.merge([{"email": "Foo@Bar.com", "firstname": "One"}], DECL)
    store.merge([{"email": "foo@bar.com", "firstname": "Two"}], DECL)
    store.merge([{"email": "  FOO@BAR.COM", "firstname": "Three"}], DECL)

    count = store.connection.execute("SELECT COUNT(*) FROM contacts").fetchone()[0]
    assert count == 1
    assert store.get("foo@bar.com")["firstname"] == "Three"


def test_merge_touches_only_declared_fields(store, clock) -> None:
    store.ensure_fields({"firstname": "text", "city": "text"})
    store.merge([{"email": "a@x.com", "firstname": "Ana"}], {"firstname": "text"})
    store.merge([{"email": "a@x.com", "city": "Lisbon"}], {"city": "text"})

    row = store.get("a@x.com")
    assert row["firstname"] == "Ana"
    assert row["city"] == "Lisbon"


def test_merge_does_not_touch_verification_state(store, clock) -> None:
    _prepare(store)
    store.merge([{"email": "a@x.com", "firstname": "A"}], DECL)
    store.mark_verified("a@x.com", "valid")

    clock.advance(1)
    store.merge([{"email": "a@x.com", "firstname": "B"}], DECL)

    assert store.get("a@x.com")["verify_status"] == "valid"


def test_blank_email_rolls_back_whole_batch(store) -> None:
    _prepare(store)
    rows = [
        {"email": "ok@x.com", "firstname": "A"},
        {"email": "   ", "firstname": "B"},
    ]
    with pytest.raises(ValueError):
        store.merge(rows, DECL)

    assert store.get("ok@x.com") is None


def test_coercion_failure_rolls_back_whole_batch(store) -> None:
    _prepare(store)
    rows = [
        {"email": "ok@x.com", "orders": "1"},
        {"email": "bad@x.com", "orders": "many"},
    ]
    with pytest.raises(ValueError):
        store.merge(rows, DECL)

    assert store.get("ok@x.com") is None
    # Connection still usable after the rollback.
    assert store.merge([{"email": "ok@x.com", "orders": 1}], DECL) == 1


def test_numeric_values_are_stored_typed(store) -> None:
    decl = {"orders": "integer", "ltv": "real"}
    store.ensure_fields(decl)
    store.merge([{"email": "a@x.com", "orders": "12", "ltv": "99.5"}], decl)

    row = store.connection.execute(
        "SELECT typeof(orders), typeof(ltv) FROM contacts WHERE email = ?", ("a@x.com",)
    ).fetchone()
    assert tuple(row) == ("integer", "real")


def test_merge_without_declared_fields_only_registers_email(store, clock) -> None:
    store.merge([{"email": "a@x.com", "ignored": "x"}], {})
    first = store.get("a@x.com")["last_import"]

    clock.advance(1)
    store.merge([{"email": "a@x.com"}], {})

    assert store.get("a@x.com")["last_import"] == first
