"""Exceptions raised by the checkpoint store and workflow engine."""


class CheckpointError(Exception):
    """Base class for checkpoint store failures."""

    pass


class CheckpointValidationError(CheckpointError):
    """Raised when a thread reference is missing or malformed.

    Always raised before any tier is touched.
    """

    pass


class CheckpointStorageError(CheckpointError):
    """Raised when the durable tier is unreachable or a query fails."""

    pass


class CheckpointCacheError(CheckpointError):
    """Raised when the cache tier is unreachable or a command fails."""

    pass


class CheckpointDecodeError(CheckpointError):
    """Raised when a stored payload cannot be decoded."""

    pass


class CheckpointNotFoundError(CheckpointError):
    """Raised when a named checkpoint does not exist."""

    pass


class WorkflowError(Exception):
    """Base class for workflow engine failures."""

    pass


class ThreadNotFoundError(WorkflowError):
    """Raised when an operation targets a thread with no checkpoints."""

    def __init__(self, thread_id: str, checkpoint_ns: str = "") -> None:
        self.thread_id = thread_id
        self.checkpoint_ns = checkpoint_ns
        scope = f"{thread_id}/{checkpoint_ns}" if checkpoint_ns else thread_id
        super().__init__(f"No checkpoints found for thread {scope}")


class WorkflowAlreadyStartedError(WorkflowError):
    """Raised when start() is called for a thread that already has history."""

    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        super().__init__(f"Workflow thread {thread_id} has already been started")
