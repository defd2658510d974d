"""Exceptions raised by the screenshot job queue."""


class QueueError(Exception):
    """Base class for queue errors."""


class InvalidJobError(QueueError):
    """Rejected at enqueue time: bad payload, incomplete target, bad options."""


class JobNotFoundError(QueueError):
    """No job with this id (it may already have been swept)."""


class JobNotCancellableError(QueueError):
    """Only waiting or delayed jobs can be cancelled."""


class QueueBackendError(QueueError):
    """The database or Redis behind the queue failed."""


class ClaimLostError(QueueError):
    """The worker's claim on a job was recovered by the janitor; its reports no longer count."""
