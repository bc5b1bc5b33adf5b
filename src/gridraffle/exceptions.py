"""Exception hierarchy for gridraffle.

Usage:
    from gridraffle.exceptions import DrawRejectedError, SnapshotError

    raise DrawRejectedError("No eligible cells", reason="empty_pool")
"""


class GridRaffleError(Exception):
    """Base exception for all gridraffle errors."""
    pass


class DrawRejectedError(GridRaffleError):
    """Raised when a draw cannot start.

    Examples:
        - No image has a selection, or every cell is excluded
        - Winner count exceeds the eligible cell count
        - A draw is already running
    """

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class SnapshotError(GridRaffleError):
    """Raised when an exported configuration cannot be imported.

    Examples:
        - Invalid JSON
        - Missing version or images
        - Image data that is not a base64 data URL
    """
    pass


class ConfigurationError(GridRaffleError):
    """Raised when a setting is given an invalid value.

    Examples:
        - Negative draw duration
        - Winner count below one
    """
    pass
