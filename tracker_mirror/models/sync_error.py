"""Defines exceptions for the synchronization process."""


class SyncError(Exception):
    """Base exception for synchronization errors."""

    def __init__(self, message: str, *args: object) -> None:
        """Initialize the exception with a descriptive message.

        Args:
            message: Detailed error message
            *args: Additional positional arguments for Exception

        """
        super().__init__(message, *args)
        self.message = message


class ProviderContractError(SyncError):
    """The data provider returned data that breaks its response contract.

    Raised for malformed responses and for pagination that never converges.
    Fatal for the issue listing; a malformed worklog or changelog fails only
    the issue it belongs to.
    """


class IssueTransformationError(SyncError):
    """A single issue record has an unexpected shape.

    Caught at the per-issue boundary; the run continues with the next issue.
    """
