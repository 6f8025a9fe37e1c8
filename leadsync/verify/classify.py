from __future__ import annotations

"""
Local (offline) email classification.

Decides what we can without spending verification credits:

  - syntactically invalid address        -> "invalid"
  - exact match on a disposable domain   -> "disposable"
  - anything else                        -> None (send to the remote job)

Matching is exact on the lowercased domain: "mail.mailinator.com" is NOT
treated as disposable just because "mailinator.com" is.
"""

from email_validator import EmailNotValidError, validate_email

STATUS_INVALID = "invalid"
STATUS_DISPOSABLE = "disposable"

# Known throwaway / temporary inbox providers. Extend as new ones show up in
# the data; keep entries lowercase.
DISPOSABLE_DOMAINS: frozenset[str] = frozenset(
    {
        "mailinator.com",
        "mailinator2.com",
        "guerrillamail.com",
        "guerrillamail.net",
        "guerrillamail.org",
        "guerrillamail.biz",
        "guerrillamail.de",
        "guerrillamail.info",
        "sharklasers.com",
        "guerrillamailblock.com",
        "grr.la",
        "spam4.me",
        "10minutemail.com",
        "10minutemail.net",
        "10minutemail.org",
        "minutemail.com",
        "tempr.email",
        "tempmail.com",
        "tempmail.net",
        "temp-mail.org",
        "temp-mail.ru",
        "tempmailer.com",
        "yopmail.com",
        "yopmail.fr",
        "trashmail.com",
        "trashmail.net",
        "trashmail.at",
        "trashmail.io",
        "trashmail.me",
        "trashmail.org",
        "dispostable.com",
        "maildrop.cc",
        "discard.email",
        "mailnesia.com",
        "mailnull.com",
        "spamgourmet.com",
        "fakeinbox.com",
        "throwaway.email",
        "jetable.net",
        "jetable.com",
        "jetable.org",
        "nomail.com",
    }
)


def is_syntax_valid(addr: str) -> bool:
    if not addr or "@" not in addr:
        return False
    try:
        validate_email(addr, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def email_domain(addr: str) -> str:
    """Text after the last '@', lowercased ('' if there is none)."""
    _, sep, domain = (addr or "").strip().rpartition("@")
    return domain.lower() if sep else ""


def is_disposable(domain: str) -> bool:
    if not domain:
        return False
    return domain.lower() in DISPOSABLE_DOMAINS


def classify_locally(email: str) -> str | None:
    """
    Return a final status if it can be decided offline, else None.

    Pure and idempotent: no network, no provider credits.
    """
    if not is_syntax_valid(email):
        return STATUS_INVALID
    if is_disposable(email_domain(email)):
        return STATUS_DISPOSABLE
    return None


__all__ = [
    "DISPOSABLE_DOMAINS",
    "STATUS_INVALID",
    "STATUS_DISPOSABLE",
    "classify_locally",
    "email_domain",
    "is_disposable",
    "is_syntax_valid",
]
