class ShardChurnError(Exception):
    """Base class for errors that stop a run before any workload starts."""

    def __init__(self, message):
        super().__init__(message)

    def __str__(self):
        return self.args[0]


class CapabilityError(ShardChurnError):
    """Raised when the server version cannot be read or parsed."""


class ShardingError(ShardChurnError):
    """Raised when the shard layout cannot be listed or is unusable."""
