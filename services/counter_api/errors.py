"""Exceptions raised by the counter storage and admin layers."""


class CounterStoreError(Exception):
    """Base class for counter storage errors."""


class StorageReadError(CounterStoreError):
    """The local record is missing, unreadable or corrupt."""


class StorageWriteError(CounterStoreError):
    """The local record could not be written."""


class RemoteStoreUnavailable(CounterStoreError):
    """The remote counter failed or did not answer in time."""


class AuthorizationError(Exception):
    """The admin secret did not match."""
