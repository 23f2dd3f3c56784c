import signal
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from oem_unlocker.classifier import Verdict, classify, normalize_output
from oem_unlocker.config import BruteforceConfig
from oem_unlocker.device import DeviceController
from oem_unlocker.errors import (
    SpaceExhaustedError,
    UnlockError,
    UnrecognizedOutputError,
    UnsupportedCommandError,
)
from oem_unlocker.generator import next_code
from oem_unlocker.snapshot import Phase, SearchSnapshot
from oem_unlocker.state_queue import SingleSlotQueue
from oem_unlocker.store import StateStore

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class SearchState:
    """Mutable progress of one run. Owned by the engine."""

    current_code: int
    attempt_count: int = 0
    last_checkpoint_attempt: int = 0
    last_reboot_attempt: int = 0


class RunStatus(Enum):
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class RunOutcome:
    status: RunStatus
    code: Optional[int] = None
    error: Optional[UnlockError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCEEDED


class BruteforceEngine:
    """
    Walks the candidate space of one device until the bootloader accepts a code.

    The loop is strictly sequential: one attempt or reboot in flight at a time.
    Cancellation is cooperative, `cancel_event` is checked after the initial
    reboot and after every attempt.
    """

    def __init__(
        self,
        config: BruteforceConfig,
        device: DeviceController,
        store: StateStore,
        *,
        cancel_event: Optional[threading.Event] = None,
        state_queue: Optional[SingleSlotQueue[SearchSnapshot]] = None,
    ):
        self.config = config
        self.device = device
        self.store = store
        self.cancel_event = cancel_event or threading.Event()
        self.state_queue = state_queue
        self.state: Optional[SearchState] = None
        self._version = 0
        self._started_at = 0.0

    @property
    def _log(self):
        # Bound per call so log output follows the current sys.stdout.
        return log.bind(imei=self.config.imei)

    def start(self) -> SearchState:
        """Resume from the saved checkpoint, or from the configured start code."""
        saved = self.store.load(self.config.imei)
        if saved is None:
            self._log.info("engine.start", start_code=self.config.start_code)
            base = self.config.start_code
        else:
            self._log.info("engine.resume", checkpoint=saved)
            base = saved
        self._started_at = time.monotonic()
        self.state = SearchState(current_code=base)
        self._publish(Phase.STARTING)
        return self.state

    def run(self) -> RunOutcome:
        state = self.start()
        try:
            self._reboot()
            if self.cancel_event.is_set():
                # Nothing attempted yet, the existing checkpoint stays valid.
                return self._finish(RunOutcome(RunStatus.CANCELLED, code=None))

            self._advance()
            return self._search()
        except SpaceExhaustedError as e:
            self._log.error("engine.exhausted", last_code=e.last_code, attempts=state.attempt_count)
            return self._finish(RunOutcome(RunStatus.EXHAUSTED, code=e.last_code, error=e, attempts=state.attempt_count))
        except UnlockError as e:
            self._log.error("engine.failed", error=str(e), code=state.current_code, attempts=state.attempt_count)
            return self._finish(RunOutcome(RunStatus.FAILED, code=state.current_code, error=e, attempts=state.attempt_count))
        finally:
            if self.state_queue is not None:
                self.state_queue.close()

    def _search(self) -> RunOutcome:
        state = self.state
        config = self.config

        while True:
            self._publish(Phase.ATTEMPTING)
            self._log.info("attempt", code=state.current_code)
            output = self.device.attempt(state.current_code)
            verdict = classify(output)
            self._log.debug("attempt.output", code=state.current_code, verdict=verdict.value, output=normalize_output(output))

            if verdict is Verdict.ACCEPTED:
                self.store.save_result(config.imei, state.current_code)
                self._log.info("engine.succeeded", code=state.current_code, attempts=state.attempt_count + 1)
                self._publish(Phase.SUCCEEDED, output)
                return RunOutcome(RunStatus.SUCCEEDED, code=state.current_code, attempts=state.attempt_count + 1)

            if verdict is Verdict.UNSUPPORTED:
                raise UnsupportedCommandError(
                    f"The device tool does not recognize the unlock command: {normalize_output(output)!r}"
                )

            if verdict is Verdict.AMBIGUOUS:
                if config.strict_output:
                    raise UnrecognizedOutputError(normalize_output(output))
                self._log.warning("attempt.ambiguous", code=state.current_code, output=normalize_output(output))
            else:
                self._log.info("attempt.rejected", code=state.current_code)

            state.attempt_count += 1
            self._publish(Phase.ATTEMPTING, output)

            if config.reboot_every and state.attempt_count - state.last_reboot_attempt >= config.reboot_every:
                state.last_reboot_attempt = state.attempt_count
                self._reboot()

            if config.save_every and state.attempt_count - state.last_checkpoint_attempt >= config.save_every:
                self._checkpoint()

            if self.cancel_event.is_set():
                if state.last_checkpoint_attempt != state.attempt_count:
                    self._checkpoint()
                self._log.warning("engine.cancelled", code=state.current_code, attempts=state.attempt_count)
                return self._finish(RunOutcome(RunStatus.CANCELLED, code=state.current_code, attempts=state.attempt_count))

            self._advance()

    def _advance(self) -> None:
        state = self.state
        candidate = next_code(state.current_code, self.config.imei)
        if candidate >= self.config.ceiling:
            raise SpaceExhaustedError(state.current_code, self.config.ceiling)
        state.current_code = candidate

    def _reboot(self) -> None:
        self._publish(Phase.REBOOTING)
        self.device.reboot_into_bootloader()

    def _checkpoint(self) -> None:
        state = self.state
        self._publish(Phase.CHECKPOINTING)
        self.store.save_checkpoint(self.config.imei, state.current_code)
        state.last_checkpoint_attempt = state.attempt_count

    def _finish(self, outcome: RunOutcome) -> RunOutcome:
        phase = {
            RunStatus.SUCCEEDED: Phase.SUCCEEDED,
            RunStatus.EXHAUSTED: Phase.EXHAUSTED,
            RunStatus.FAILED: Phase.FAILED,
            RunStatus.CANCELLED: Phase.CANCELLED,
        }[outcome.status]
        self._publish(phase)
        return outcome

    def _publish(self, phase: Phase, output: str = "") -> None:
        if self.state_queue is None or self.state is None:
            return
        self._version += 1
        state = self.state
        self.state_queue.publish(SearchSnapshot(
            version=self._version,
            phase=phase,
            imei=self.config.imei,
            current_code=state.current_code,
            start_code=self.config.start_code,
            ceiling=self.config.ceiling,
            attempt_count=state.attempt_count,
            last_checkpoint_attempt=state.last_checkpoint_attempt,
            last_reboot_attempt=state.last_reboot_attempt,
            last_output=normalize_output(output),
            started_at=self._started_at,
        ))


def install_termination_hook(cancel_event: threading.Event) -> Dict[int, Callable]:
    """
    Route SIGINT and SIGTERM to the cancellation flag. A second signal while
    the flag is already set raises KeyboardInterrupt in the main thread, so the
    caller can exit without waiting for the engine. Returns the previous handlers.
    Must be called from the main thread.
    """
    def handle(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        log.warning("signal.received", signal=signal.Signals(signum).name)
        cancel_event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, handle)
    return previous


def restore_signal_handlers(previous: Dict[int, Callable]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)
