"""
Object storage interface.

The queue needs two things from storage:
- get_object(key): read the HTML source of an html_ref job
- put_object(data, key): save the rendered PNG and get back a URL that the
  owning entity can point at

S3ObjectStorage (storage/s3.py) is the production implementation.
"""

from abc import ABC, abstractmethod


class StorageError(Exception):
    """Object storage could not complete a request."""


class ObjectNotFoundError(StorageError):
    """The requested key does not exist. Retrying will not make it appear."""


class ObjectStorage(ABC):

    @abstractmethod
    def get_object(self, key: str) -> bytes:
        """Return the object's bytes. Raises ObjectNotFoundError if missing."""
        ...

    @abstractmethod
    def put_object(self, data: bytes, key: str, content_type: str = "image/png") -> str:
        """Store `data` under `key` and return a durable URL for it."""
        ...
