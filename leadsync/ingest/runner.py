# leadsync/ingest/runner.py
"""
Import stage: pull every configured source and merge it into the store.

- Column declarations are validated for all sources before any source is
  read; a bad name or type is a configuration error for the whole run.
- After that, each source is isolated: a connection failure, a bad query or
  a result without an `email` column is logged and that source is skipped.
- Each source's rows are merged in one transaction, so a failing source
  never leaves a half-applied batch behind.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from leadsync.exceptions import ConfigurationError, SourceError
from leadsync.ingest.sources import Source
from leadsync.logs import BatchLogger, new_batch_id
from leadsync.schema import EMAIL_FIELD, normalize_declaration
from leadsync.store import ContactStore

log = logging.getLogger(__name__)


@dataclass
class SourceResult:
    label: str
    ok: bool = False
    rows: int = 0
    skipped_blank: int = 0
    added_fields: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class ImportSummary:
    batch_id: str
    sources: list[SourceResult] = field(default_factory=list)

    @property
    def failed(self) -> list[SourceResult]:
        return [s for s in self.sources if not s.ok]

    @property
    def rows(self) -> int:
        return sum(s.rows for s in self.sources)


def validate_declarations(sources: Sequence[Source]) -> None:
    for source in sources:
        if not source.columns:
            raise ConfigurationError(f"Source {source.label!r} has no 'columns' declared.")
        try:
            normalize_declaration(source.columns)
        except ConfigurationError as exc:
            raise ConfigurationError(f"Source {source.label!r}: {exc}") from exc


def import_source(store: ContactStore, source: Source, blog: BatchLogger) -> SourceResult:
    result = SourceResult(label=source.label)

    rows = source.fetch_rows()
    if not rows:
        blog.info(f"source empty: {source.label}")
        result.ok = True
        return result

    if EMAIL_FIELD not in rows[0]:
        raise SourceError(f"Query for source {source.label!r} must return an 'email' column.")

    usable = [r for r in rows if str(r.get(EMAIL_FIELD) or "").strip()]
    result.skipped_blank = len(rows) - len(usable)
    if result.skipped_blank:
        blog.warning(
            f"source {source.label} returned rows without email",
            context={"skipped": result.skipped_blank},
        )

    result.added_fields = store.ensure_fields(source.columns)
    result.rows = store.merge(usable, source.columns)
    result.ok = True
    return result


def run_import(
    store: ContactStore,
    sources: Sequence[Source],
    *,
    batch_id: str | None = None,
) -> ImportSummary:
    batch_id = batch_id or new_batch_id("import")
    blog = BatchLogger(log, batch_id)
    summary = ImportSummary(batch_id=batch_id)

    validate_declarations(sources)
    blog.info("import started", context={"sources": len(sources)})

    for source in sources:
        blog.info(f"source started: {source.label}")
        try:
            result = import_source(store, source, blog)
        except Exception as exc:  # noqa: BLE001 - one source must not stop the others
            blog.error(
                f"source failed: {source.label}",
                context={"error": f"{type(exc).__name__}: {exc}"},
                exc_info=True,
            )
            summary.sources.append(
                SourceResult(label=source.label, ok=False, error=f"{type(exc).__name__}: {exc}")
            )
            continue

        summary.sources.append(result)
        blog.info(
            f"source finished: {source.label}",
            context={
                "rows": result.rows,
                "skipped_blank": result.skipped_blank,
                "columns": dict(source.columns),
                "added_fields": result.added_fields,
            },
        )

    blog.info(
        "import finished",
        context={"rows": summary.rows, "failed_sources": [s.label for s in summary.failed]},
    )
    return summary


__all__ = [
    "ImportSummary",
    "SourceResult",
    "import_source",
    "run_import",
    "validate_declarations",
]
