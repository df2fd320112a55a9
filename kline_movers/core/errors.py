"""Fatal error types surfaced to the caller of a pipeline run."""


class SetupError(RuntimeError):
    """Configuration or exchange metadata is missing or unusable."""


class StorageError(RuntimeError):
    """Base class for storage record failures."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"{name}: {message}")
        self.name = name


class StorageNotFoundError(StorageError):
    """The named record has never been saved."""


class StorageParseError(StorageError):
    """The named record exists but does not hold valid JSON."""


class StorageWriteError(StorageError):
    """The named record could not be replaced atomically."""
