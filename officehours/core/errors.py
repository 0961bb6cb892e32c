"""Error taxonomy for officehours.

``UsageError`` subclasses signal a precondition the caller could have checked.
They are raised synchronously, before any state changes, and are meant to be
shown to the user as-is rather than logged as bugs.
"""


class OfficeHoursError(Exception):
    """Base class for all officehours errors."""


class UsageError(OfficeHoursError):
    """The caller violated a precondition of an operation.

    Attributes:
        message: Human-readable description.
        queue_name: Queue the operation targeted, if any.
    """

    def __init__(self, message: str, queue_name: str | None = None):
        self.message = message
        self.queue_name = queue_name
        super().__init__(f"{message} (queue: {queue_name})" if queue_name else message)

    def brief(self) -> str:
        """One-line description suitable for a user-facing reply."""
        if self.queue_name:
            return f"{type(self).__name__} in '{self.queue_name}': {self.message}"
        return f"{type(self).__name__}: {self.message}"


class AlreadyInQueueError(UsageError):
    """The actor already has a waiter entry in the queue."""


class QueueEmptyError(UsageError):
    """There is nobody to dequeue."""


class NotInQueueError(UsageError):
    """The requested student is not waiting in the queue."""


class AlreadyHelpingError(UsageError):
    """The actor already has an open helper session."""


class NotHelpingError(UsageError):
    """The actor has no open helper session."""


class NotServingQueueError(UsageError):
    """The helper tried to claim from a queue their session does not serve."""


class QueueNotFoundError(UsageError):
    """No queue with the given id exists on the server."""


class QueueAlreadyExistsError(UsageError):
    """A queue with the given id already exists on the server."""


class ServerAlreadyRegisteredError(UsageError):
    """A server with the given id is already registered."""


class ExtensionSetupError(OfficeHoursError):
    """A built-in extension could not be set up from its configuration."""

    def brief(self) -> str:
        return f"{type(self).__name__}: {self}"
