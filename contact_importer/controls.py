"""Operator controls for a running import."""
from __future__ import annotations

from .models import ImportRunState, RunStatus
from .processor import BatchProcessor


class ImportControls:
    """Pause, resume and cancel buttons bound to one :class:`BatchProcessor`.

    Each action returns ``True`` when it changed the run's status and
    ``False`` when the run was not in a state that accepts it.
    """

    def __init__(self, processor: BatchProcessor) -> None:
        self._processor = processor

    @property
    def state(self) -> ImportRunState:
        return self._processor.state

    @property
    def is_paused(self) -> bool:
        return self._processor.status is RunStatus.PAUSED

    @property
    def is_active(self) -> bool:
        return self._processor.status in {RunStatus.RUNNING, RunStatus.PAUSED, RunStatus.CANCELLING}

    def pause(self) -> bool:
        return self._processor.pause()

    def resume(self) -> bool:
        return self._processor.resume()

    def cancel(self) -> bool:
        return self._processor.cancel()

    def toggle_pause(self) -> bool:
        if self.is_paused:
            return self.resume()
        return self.pause()


__all__ = ["ImportControls"]
