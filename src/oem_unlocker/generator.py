from decimal import Decimal, ROUND_HALF_UP, localcontext

START_CODE = 1000000000000000
STEP_MULTIPLIER = 1024
CODE_WIDTH = 16


def ceiling_for(start_code: int) -> int:
    """The first value with one more decimal digit than the start code."""
    return 10 ** len(str(start_code))


def code_step(imei: int) -> Decimal:
    """Distance between two consecutive candidates for a device: sqrt(imei) * 1024."""
    if imei <= 0:
        raise ValueError(f"IMEI must be a positive integer, got {imei}")
    with localcontext() as ctx:
        ctx.prec = 50
        return Decimal(imei).sqrt() * STEP_MULTIPLIER


def next_code(current: int, imei: int) -> int:
    """
    Return the candidate that follows `current` for the given device.
    The fractional step is added to the current code and the sum is rounded
    half up, so the sequence is strictly increasing for every IMEI.
    """
    with localcontext() as ctx:
        ctx.prec = 50
        total = Decimal(current) + code_step(imei)
        return int(total.to_integral_value(rounding=ROUND_HALF_UP))


def format_code(code: int) -> str:
    return str(code).zfill(CODE_WIDTH)
