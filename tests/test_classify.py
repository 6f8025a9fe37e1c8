# tests/test_classify.py
from __future__ import annotations

import pytest

from leadsync.verify.classify import (
    DISPOSABLE_DOMAINS,
    classify_locally,
    email_domain,
    is_disposable,
)


@pytest.mark.parametrize(
    ("email", "expected"),
    [
        ("not-an-email", "invalid"),
        ("a@mailinator.com", "disposable"),
        ("a@mail.mailinator.com", None),
        ("A@MAILINATOR.COM", "disposable"),
        ("user@gmail.com", None),
    ],
)
def test_classify_locally_examples(email, expected) -> None:
    assert classify_locally(email) == expected


@pytest.mark.parametrize("email", ["", "@", "a@", "@b.com", "a b@c.com", "a@@b.com"])
def test_malformed_addresses_are_invalid(email) -> None:
    assert classify_locally(email) == "invalid"


def test_classification_is_idempotent() -> None:
    results = {classify_locally("someone@yopmail.com") for _ in range(3)}
    assert results == {"disposable"}


def test_email_domain_uses_last_at() -> None:
    assert email_domain('"a@b"@Example.COM') == "example.com"
    assert email_domain("nobody") == ""


def test_disposable_set_is_lowercase() -> None:
    assert all(d == d.lower() for d in DISPOSABLE_DOMAINS)
    assert not is_disposable("")
    assert is_disposable("YOPMAIL.com")
