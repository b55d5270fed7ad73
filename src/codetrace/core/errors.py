"""Exceptions raised across codetrace.

Acquisition and parse errors are per-unit: the ingestion coordinator catches
them and moves on. An IndexConsistencyError means the term index no longer
matches the provision records and the index must be rebuilt.
"""


class CodetraceError(Exception):
    """Base class for codetrace errors."""


class UnknownSourceError(CodetraceError, ValueError):
    """A source key outside the known enumeration."""


class AcquisitionError(CodetraceError):
    """A document could not be fetched.

    ``status_code`` is the HTTP status for a non-2xx response, or None when
    the request never produced a response (DNS, timeout, connection reset).
    """

    def __init__(self, url: str, status_code: int | None = None, message: str = "") -> None:
        self.url = url
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else (message or "request failed")
        super().__init__(f"{detail} for {url}")


class DocumentParseError(CodetraceError):
    """A fetched document could not be read as text."""

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        super().__init__(f"Could not extract text from {url}: {reason}" if reason else f"Could not extract text from {url}")


class IndexConsistencyError(CodetraceError):
    """The term index and the provision records are out of sync."""

    def __init__(self, missing_from_index: int, orphaned_in_index: int) -> None:
        self.missing_from_index = missing_from_index
        self.orphaned_in_index = orphaned_in_index
        super().__init__(
            f"Term index out of sync: {missing_from_index} provisions missing from index, "
            f"{orphaned_in_index} index entries without a provision. Rebuild the index."
        )
