"""
Pipeline error taxonomy.

Only ConfigurationError and SourceUnavailable abort a run. The others are
raised and caught inside a single component and end up as counters in the
run summary.
"""


class PipelineError(Exception):
    """Base exception for order pipeline errors."""
    pass


class ConfigurationError(PipelineError):
    """Required identifier or credential is missing."""
    pass


class SourceUnavailable(PipelineError):
    """Spreadsheet, client directory or ledger cannot be read."""
    pass


class ValidationSkip(PipelineError):
    """A sheet row is malformed and gets skipped."""

    def __init__(self, row_number: int, reason: str):
        super().__init__(f"Row {row_number}: {reason}")
        self.row_number = row_number
        self.reason = reason


class DeliveryFailure(PipelineError):
    """The messaging gateway did not accept a message."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class SinkFailure(PipelineError):
    """The webhook sink did not accept the payload."""
    pass
