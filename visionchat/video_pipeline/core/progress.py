from typing import Callable, List, Optional, Tuple
from loguru import logger

ProgressListener = Callable[[float, str], None]

# Share of the overall run owned by each stage, as (start, end) percentages.
SAMPLING_RANGE: Tuple[float, float] = (0.0, 40.0)
CAPTIONING_RANGE: Tuple[float, float] = (40.0, 80.0)
SUMMARIZATION_RANGE: Tuple[float, float] = (80.0, 100.0)

STATUS_INITIALIZING = "Initializing..."
STATUS_SAMPLING = "Extracting key frames..."
STATUS_CAPTIONING = "Generating captions..."
STATUS_SUMMARIZING = "Creating summary..."
STATUS_COMPLETE = "Analysis complete!"
STATUS_FAILED = "Processing failed"
STATUS_CANCELLED = "Cancelled"


class ProgressTracker:
    """
    Cosmetic progress for one processing run.

    The percentage only ever moves forward and is capped at 100. Nothing in
    the pipeline reads it back to make decisions.
    """

    def __init__(self, listeners: Optional[List[ProgressListener]] = None):
        self._percent = 0.0
        self._status = STATUS_INITIALIZING
        self._listeners: List[ProgressListener] = list(listeners or [])

    @property
    def percent(self) -> float:
        return self._percent

    @property
    def status(self) -> str:
        return self._status

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def set_status(self, status: str) -> None:
        self._status = status
        self._notify()

    def advance(self, amount: float) -> None:
        if amount <= 0:
            return
        self.advance_to(self._percent + amount)

    def advance_to(self, percent: float) -> None:
        percent = min(100.0, percent)
        if percent <= self._percent:
            return
        self._percent = percent
        self._notify()

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self._percent, self._status)
            except Exception as e:
                logger.warning(f"Progress listener raised: {e}")
