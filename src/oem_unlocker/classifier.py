from enum import Enum
from typing import Dict, Tuple


class Verdict(Enum):
    UNSUPPORTED = "unsupported"
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    AMBIGUOUS = "ambiguous"


# Lower-case fragments of the messages printed by the device tools.
# Checked in insertion order, the first verdict with a matching fragment wins.
DEVICE_MESSAGES: Dict[Verdict, Tuple[str, ...]] = {
    Verdict.UNSUPPORTED: (
        "unknown command",
        "command not allowed",
        "unknown option",
    ),
    Verdict.REJECTED: (
        "check password failed",
        "password wrong",
        "invalid key",
        "wrong code",
    ),
    Verdict.ACCEPTED: (
        "oem unlock success",
        "unlocked successfully",
    ),
}

# fastboot ends every command that did not fail with a bare OKAY. It only counts as
# an accepted code when the bootloader printed nothing else and nothing failed.
GENERIC_OKAY = "okay"
OKAY_DISQUALIFIERS = ("(bootloader)", "failed")


def normalize_output(raw_output: str) -> str:
    return raw_output.lower().strip()


def classify(raw_output: str) -> Verdict:
    """Map the output of one unlock attempt to a verdict."""
    output = normalize_output(raw_output)
    for verdict, fragments in DEVICE_MESSAGES.items():
        if any(fragment in output for fragment in fragments):
            return verdict
    if GENERIC_OKAY in output and not any(marker in output for marker in OKAY_DISQUALIFIERS):
        return Verdict.ACCEPTED
    return Verdict.AMBIGUOUS
