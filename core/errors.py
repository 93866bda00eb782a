"""Error kinds surfaced to the operator.

None of these are retried; the operator re-triggers the action.
"""


class BitvisionError(Exception):
    """Base exception for dashboard core errors."""
    pass


class ConfigNotFound(BitvisionError):
    """Configuration document is absent. Recoverable: defaults apply."""
    pass


class CorruptConfig(BitvisionError):
    """Stored document does not parse or does not match the schema."""
    pass


class ValidationFailed(BitvisionError):
    """A mutation would violate a document invariant. Nothing was written."""
    pass


class InvalidParameters(ValidationFailed):
    """Caller-supplied amount, side or delay is unusable."""
    pass


class ConfigIOError(BitvisionError):
    """Disk write or delete failed. The operation was not applied."""
    pass


class SpawnFailed(BitvisionError):
    """External command could not be started."""
    pass


class Unauthorized(BitvisionError):
    """Trading action attempted without valid credentials."""
    pass
