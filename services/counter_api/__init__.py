"""
Be There counter service.

This package contains:
- CounterState and the API request/response models
- StateStore with its local file and Redis backends
- Vote tracking strategies (client flag, cookie, network address)
- The FastAPI application
"""

from .errors import (
    AuthorizationError,
    CounterStoreError,
    RemoteStoreUnavailable,
    StorageReadError,
    StorageWriteError,
)
from .models import CounterState
from .storage import JsonFileStorage, MemoryStorage, RemoteCounter
from .store import StateStore
from .vote_tracker import (
    AddressVoteTracker,
    ClientFlagVoteTracker,
    CookieVoteTracker,
    VoteTracker,
    build_vote_tracker,
)

__all__ = [
    'AuthorizationError',
    'CounterStoreError',
    'RemoteStoreUnavailable',
    'StorageReadError',
    'StorageWriteError',
    'CounterState',
    'JsonFileStorage',
    'MemoryStorage',
    'RemoteCounter',
    'StateStore',
    'AddressVoteTracker',
    'ClientFlagVoteTracker',
    'CookieVoteTracker',
    'VoteTracker',
    'build_vote_tracker',
]

__version__ = '1.0.0'
