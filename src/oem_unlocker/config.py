import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
)

from oem_unlocker.errors import ConfigError
from oem_unlocker.generator import START_CODE, ceiling_for

# Keys used by existing config.json files.
LEGACY_KEYS = {
    "autorebootAfter": "reboot_every",
    "saveStateAfter": "save_every",
    "throwOnUnknownErrors": "strict_output",
}


class BruteforceConfig(BaseModel):
    """Settings for one search run. Immutable once loaded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    imei: PositiveInt
    reboot_every: Optional[PositiveInt] = None
    save_every: Optional[PositiveInt] = None
    strict_output: bool = False
    start_code: NonNegativeInt = START_CODE
    state_dir: Path = Field(default=Path("."))
    adb_path: str = "adb"
    fastboot_path: str = "fastboot"
    poll_interval: PositiveFloat = 1.0

    @field_validator("reboot_every", "save_every", mode="before")
    @classmethod
    def _zero_disables(cls, value: Any) -> Any:
        if value is False or value == 0:
            return None
        return value

    @property
    def ceiling(self) -> int:
        return ceiling_for(self.start_code)


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {LEGACY_KEYS.get(key, key): value for key, value in data.items()}


def read_config_file(path: Path | str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return _normalize_keys(data)


def load_config(path: Optional[Path | str] = None, **overrides: Any) -> BruteforceConfig:
    """
    Build the run configuration from an optional JSON file plus overrides.
    Overrides set to None are ignored so unset command-line options keep the file value.
    """
    data: Dict[str, Any] = {}
    if path is not None and Path(path).exists():
        data = read_config_file(path)
    elif path is not None and not overrides.get("imei"):
        raise ConfigError(f"Config file not found: {path}")

    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return BruteforceConfig(**data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
