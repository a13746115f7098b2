"""
Exceptions raised by the backup pipeline.

Every stage failure reaches the caller as a StageFailed carrying the stage
that was being attempted and one of the errors below as its cause.
"""


class BackupError(Exception):
    """Base class for backup pipeline errors."""
    pass


class ConfigError(BackupError):
    """Raised when required configuration is missing or invalid."""
    pass


class StoreUnavailable(BackupError):
    """Raised when the etcd snapshot request fails or times out."""
    pass


class BackupIOError(BackupError):
    """Raised when a local file cannot be read, written or hashed."""
    pass


class UnsupportedFileType(BackupIOError):
    """Raised when an archive input is neither a regular file nor a directory."""

    def __init__(self, path: str, kind: str):
        self.path = path
        self.kind = kind
        super().__init__(f"Unsupported file type ({kind}): {path}")


class PublishError(BackupError):
    """Raised when the destination check or the upload fails."""
    pass


class StageFailed(BackupError):
    """Raised by the orchestrator when a stage fails."""

    def __init__(self, stage, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage.value} failed: {cause}")
