from dataclasses import dataclass
from enum import Enum


class Phase(Enum):
    STARTING = "starting"
    REBOOTING = "rebooting"
    ATTEMPTING = "attempting"
    CHECKPOINTING = "checkpointing"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (Phase.SUCCEEDED, Phase.EXHAUSTED, Phase.FAILED, Phase.CANCELLED)


@dataclass(frozen=True, slots=True)
class SearchSnapshot:
    """Immutable view of the engine's progress, handed to the UI thread."""

    version: int
    phase: Phase
    imei: int
    current_code: int
    start_code: int
    ceiling: int
    attempt_count: int
    last_checkpoint_attempt: int
    last_reboot_attempt: int
    last_output: str = ""
    started_at: float = 0.0

    @property
    def progress_percent(self) -> float:
        span = self.ceiling - self.start_code
        if span <= 0:
            return 100.0
        done = min(max(self.current_code - self.start_code, 0), span)
        return done / span * 100

    def attempts_per_minute(self, now: float) -> float:
        elapsed = now - self.started_at
        if not self.started_at or elapsed <= 0:
            return 0.0
        return self.attempt_count / elapsed * 60
