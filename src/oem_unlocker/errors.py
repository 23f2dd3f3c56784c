class UnlockError(RuntimeError):
    """Base class for every fatal condition of a search run."""


class ConfigError(UnlockError):
    pass


class DeviceEnvironmentError(UnlockError):
    """The device tool is missing or the device cannot be reached."""


class UnsupportedCommandError(UnlockError):
    """The device tool does not recognize the unlock command."""


class UnrecognizedOutputError(UnlockError):
    """The device replied with text that matches no known message."""

    def __init__(self, output: str):
        super().__init__(f"Unrecognized device output: {output!r}")
        self.output = output


class SpaceExhaustedError(UnlockError):
    """Every candidate below the ceiling was tried without success."""

    def __init__(self, last_code: int, ceiling: int):
        super().__init__(f"No combination found (last code {last_code}, ceiling {ceiling})")
        self.last_code = last_code
        self.ceiling = ceiling
