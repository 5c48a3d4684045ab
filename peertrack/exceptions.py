"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class PeerTrackError(Exception):
    """Base exception for all application-specific errors."""


class PersistenceError(PeerTrackError):
    """Raised when the checkpoint journal cannot be read from or written to."""


class CheckpointStateError(PeerTrackError):
    """Raised when a checkpoint payload cannot be deserialized."""


class UnsafePathError(PeerTrackError):
    """
    Raised when a path stored in a checkpoint contains a traversal segment or is
    otherwise not a valid file path.
    """


class ConfigurationError(PeerTrackError):
    """Raised for issues related to configuration loading or validation."""
