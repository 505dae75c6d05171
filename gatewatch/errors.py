"""Exception types for GateWatch."""


class GateWatchError(Exception):
    """Base class for recoverable engine errors."""


class SnapshotValidationError(GateWatchError):
    """A threat database payload is malformed or internally inconsistent."""


class StaleSnapshotError(GateWatchError):
    """An update offered a version that is not newer than the active one."""


class UpdateTransportError(GateWatchError):
    """The threat feed could not be fetched."""


class StorageError(GateWatchError):
    """Persisted state could not be read or written."""
