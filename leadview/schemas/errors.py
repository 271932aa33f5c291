from typing import Optional


class LeadviewError(Exception):
    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class ConfigurationError(LeadviewError):
    """Invalid query shape supplied by the calling code, not by an end user."""

    def __init__(self, message: str, error_code: str = "invalid_configuration"):
        super().__init__(message, error_code)


class SnapshotError(LeadviewError):
    """A record snapshot could not be located, parsed or recognised."""

    def __init__(self, message: str, error_code: str = "snapshot_error"):
        super().__init__(message, error_code)


class SyncError(LeadviewError):
    """A lead sync run could not continue."""

    def __init__(self, message: str, error_code: str = "sync_error"):
        super().__init__(message, error_code)


class UnmatchedFieldWarning(UserWarning):
    """A filter or sort rule references a field the catalog does not know.

    Logged and reported on the query result, never raised.
    """

    def __init__(self, field: str, context: str = "filter"):
        self.field = field
        self.context = context
        outcome = "treated as non-matching" if context == "filter" else "ignored"
        super().__init__(f"Unknown {context} field '{field}'; rule {outcome}")
