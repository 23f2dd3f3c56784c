import subprocess
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import structlog

from oem_unlocker.classifier import DEVICE_MESSAGES, Verdict
from oem_unlocker.errors import DeviceEnvironmentError

log = structlog.get_logger(__name__)

CommandRunner = Callable[[Sequence[str]], "CommandResult"]


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Exit status and merged stdout/stderr text of one tool invocation."""

    argv: Tuple[str, ...]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(argv: Sequence[str]) -> CommandResult:
    """Run a device tool to completion. fastboot reports on stderr, so both streams are merged."""
    try:
        completed = subprocess.run(
            list(argv),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise DeviceEnvironmentError(f"Cannot run {argv[0]}: {e}") from e
    return CommandResult(tuple(argv), completed.returncode, completed.stdout or "")


class DeviceController(Protocol):
    def attempt(self, code: int) -> str:
        ...

    def reboot_into_bootloader(self) -> None:
        ...


class FastbootDevice:
    """Talks to one device through the adb and fastboot command-line tools."""

    def __init__(
        self,
        adb_path: str = "adb",
        fastboot_path: str = "fastboot",
        *,
        poll_interval: float = 1.0,
        disconnect_polls: int = 30,
        runner: CommandRunner = run_command,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.adb_path = adb_path
        self.fastboot_path = fastboot_path
        self.poll_interval = poll_interval
        self.disconnect_polls = disconnect_polls
        self._run = runner
        self._sleep = sleep

    def attempt(self, code: int) -> str:
        # A rejected code exits non-zero, the caller classifies the text.
        result = self._run([self.fastboot_path, "oem", "unlock", str(code)])
        return result.output

    def list_fastboot_devices(self) -> List[str]:
        result = self._run([self.fastboot_path, "devices"])
        if not result.ok:
            raise DeviceEnvironmentError(f"fastboot devices failed: {result.output.strip()}")
        serials = []
        for line in result.output.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "fastboot":
                serials.append(parts[0])
        return serials

    def reboot_into_bootloader(self) -> None:
        """Reboot into the bootloader and block until fastboot sees the device again."""
        before = self.list_fastboot_devices()
        if before:
            argv = [self.fastboot_path, "reboot", "bootloader"]
        else:
            # Device is booted into the OS (or not connected yet).
            argv = [self.adb_path, "reboot", "bootloader"]
        log.info("device.reboot", command=" ".join(argv))
        result = self._run(argv)
        if not result.ok:
            raise DeviceEnvironmentError(f"{' '.join(argv)} failed: {result.output.strip()}")
        if before:
            self.wait_until_gone(before)
        self.wait_until_ready()

    def wait_until_gone(self, serials: List[str]) -> None:
        """
        Wait for a rebooting device to drop off the fastboot list, so the
        readiness check does not see it before it went down. Gives up after
        `disconnect_polls` polls in case the reboot was too quick to observe.
        """
        polls = 0
        while polls < self.disconnect_polls and set(serials) & set(self.list_fastboot_devices()):
            polls += 1
            self._sleep(self.poll_interval)
        log.debug("device.disconnected", serials=serials, polls=polls)

    def wait_until_ready(self) -> None:
        polls = 0
        while not (serials := self.list_fastboot_devices()):
            polls += 1
            self._sleep(self.poll_interval)
        log.info("device.ready", serials=serials, polls=polls)


class SimulatedDevice:
    """In-process stand-in for a device whose unlock code is known. Used by the demo command."""

    def __init__(self, secret_code: int, *, lockout_after: Optional[int] = None):
        self.secret_code = secret_code
        self.lockout_after = lockout_after
        self.attempts = 0
        self.reboots = 0
        self._attempts_since_reboot = 0
        self.unlocked = False

    def attempt(self, code: int) -> str:
        self.attempts += 1
        self._attempts_since_reboot += 1
        if self.lockout_after is not None and self._attempts_since_reboot > self.lockout_after:
            # Locked out until the next reboot, reply like an unsupported command.
            return f"FAILED (remote: '{DEVICE_MESSAGES[Verdict.UNSUPPORTED][1]}')"
        if code == self.secret_code:
            self.unlocked = True
            return "...\nOKAY [  0.031s]\nFinished. Total time: 0.031s"
        return f"...\nFAILED (remote: '{DEVICE_MESSAGES[Verdict.REJECTED][0]}!')\nfastboot: error: Command failed"

    def reboot_into_bootloader(self) -> None:
        self.reboots += 1
        self._attempts_since_reboot = 0
