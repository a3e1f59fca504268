"""Ports for progress transport and update channels."""

from .channel_port import FailureCallback, Subscription, UpdateCallback, UpdateChannelPort
from .transport_port import PROGRESS_UPDATE_PATH, ProgressTransport, domain_path, history_path, snapshot_path

__all__ = [
    "FailureCallback",
    "PROGRESS_UPDATE_PATH",
    "ProgressTransport",
    "Subscription",
    "UpdateCallback",
    "UpdateChannelPort",
    "domain_path",
    "history_path",
    "snapshot_path",
]
