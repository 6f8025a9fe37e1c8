from leadsync.export.provider import CrmContact, PublicationProvider
from leadsync.export.publisher import ExportSummary, build_payload, run_export

__all__ = [
    "CrmContact",
    "ExportSummary",
    "PublicationProvider",
    "build_payload",
    "run_export",
]
