import re
from pathlib import Path
from typing import Optional

import structlog

log = structlog.get_logger(__name__)

RESULT_PATTERN = re.compile(r"is:\s*(\d+)\s*$")


class StateStore:
    """Checkpoint and result files for one or more devices, kept in a single directory."""

    def __init__(self, state_dir: Path | str = "."):
        self.state_dir = Path(state_dir)

    def checkpoint_path(self, imei: int) -> Path:
        return self.state_dir / f"saved_state_{imei}.txt"

    def result_path(self, imei: int) -> Path:
        return self.state_dir / f"code_{imei}.txt"

    def load(self, imei: int) -> Optional[int]:
        """Return the last saved code, or None when there is nothing usable to resume from."""
        path = self.checkpoint_path(imei)
        try:
            content = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        if not (content.isascii() and content.isdigit()):
            if content:
                log.warning("checkpoint.unparsable", path=str(path), content=content[:40])
            return None
        return int(content)

    def save_checkpoint(self, imei: int, code: int) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.checkpoint_path(imei)
        path.write_text(str(code), encoding="utf-8")
        log.info("checkpoint.saved", path=str(path), code=code)

    def clear_checkpoint(self, imei: int) -> bool:
        path = self.checkpoint_path(imei)
        if not path.exists():
            return False
        path.unlink()
        return True

    def save_result(self, imei: int, code: int) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.result_path(imei)
        path.write_text(
            f"The bootloader code for the device with IMEI {imei} is: {code}",
            encoding="utf-8",
        )
        log.info("result.saved", path=str(path), code=code)

    def load_result(self, imei: int) -> Optional[int]:
        try:
            content = self.result_path(imei).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        match = RESULT_PATTERN.search(content.strip())
        return int(match.group(1)) if match else None
