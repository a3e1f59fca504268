from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from assessment_progress.domain.progress import ProgressError, ProgressUpdate

UpdateCallback = Callable[[ProgressUpdate], None]
FailureCallback = Callable[[ProgressError], None]


class Subscription(ABC):
    """Cancellation handle returned by an update channel."""

    @abstractmethod
    def cancel(self) -> None:
        """Stops further callbacks. Calling it more than once is a no-op."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class UpdateChannelPort(ABC):
    """Port delivering ProgressUpdate fragments, by polling or push."""

    @abstractmethod
    def open(
        self,
        assessment_id: str,
        on_update: UpdateCallback,
        on_failure: Optional[FailureCallback] = None,
    ) -> Subscription:
        """Starts delivery for one assessment without blocking the caller."""
