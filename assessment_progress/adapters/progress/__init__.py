"""Transport and channel adapters for the progress client."""

from .http_transport import RequestsTransport, TokenProvider
from .polling_channel import PollingUpdateChannel
from .push_channel import PushUpdateChannel

__all__ = [
    "PollingUpdateChannel",
    "PushUpdateChannel",
    "RequestsTransport",
    "TokenProvider",
]
