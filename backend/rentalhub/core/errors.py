"""
Domain exceptions shared by the rental and backup engines.
Messages are human-oriented and surfaced verbatim by the API and CLI.
"""


class RentalHubError(Exception):
    """Base class for every error raised by the core engines."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationConflict(RentalHubError):
    """A business invariant would be violated by the requested change."""


class InvalidRentalDates(ValidationConflict):
    """Date ordering rule broken (end before start, renewal not later, ...)."""


class NotFound(RentalHubError):
    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found.")
        self.entity = entity
        self.entity_id = entity_id


class ExternalToolFailure(RentalHubError):
    """Backup export or restore tool missing, timed out or exited with an error."""


class FilesystemError(RentalHubError):
    """Backup artifact missing or not writable."""
