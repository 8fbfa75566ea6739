"""
Error taxonomy for the refresh pipelines.

File-level and load-level errors abort the refresh of one table. Per-row
ValidationError is raised by validators and counted by the lookup pipeline;
it never aborts a run on its own.
"""


class RefreshError(Exception):
    """Base class for every error raised by the refresh pipelines."""


class DiscoveryError(RefreshError):
    """Raised when the storage directory (or a source file name) cannot be used."""


class MergeError(RefreshError):
    """Raised when partitions cannot be merged into the master extract."""

    def __init__(self, message: str, partition: str | None = None):
        self.partition = partition
        if partition:
            message = f"{message} (partition: {partition})"
        super().__init__(message)


class LoadError(RefreshError):
    """Raised when the staging table cannot be prepared or bulk-loaded."""


class ValidationError(RefreshError):
    """Raised when a raw record fails a structural rule."""

    def __init__(self, rule_name: str, field_name: str, message: str):
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message
        super().__init__(f"[{rule_name}] {field_name}: {message}")


class SwapError(RefreshError):
    """Raised when staging cannot be promoted over the live table."""


class StateError(RefreshError):
    """Raised on a lifecycle transition from an invalid prior state."""
