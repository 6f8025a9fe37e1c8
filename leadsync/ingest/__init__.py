from leadsync.ingest.runner import ImportSummary, SourceResult, run_import
from leadsync.ingest.sources import Source, SqlSource, connect_url, sources_from_config

__all__ = [
    "ImportSummary",
    "Source",
    "SourceResult",
    "SqlSource",
    "connect_url",
    "run_import",
    "sources_from_config",
]
