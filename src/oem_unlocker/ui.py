import time
from typing import Optional

from rich.panel import Panel
from rich.table import Table
from rich.live import Live

from oem_unlocker.generator import format_code
from oem_unlocker.snapshot import Phase, SearchSnapshot
from oem_unlocker.state_queue import SingleSlotQueue


PHASE_STYLES = {
    Phase.STARTING: "dim",
    Phase.REBOOTING: "bold yellow",
    Phase.ATTEMPTING: "cyan",
    Phase.CHECKPOINTING: "magenta",
    Phase.SUCCEEDED: "bold spring_green2",
    Phase.EXHAUSTED: "bold red",
    Phase.FAILED: "bold red",
    Phase.CANCELLED: "bold yellow",
}


def render(state: Optional[SearchSnapshot], now: Optional[float] = None):
    """Render the engine progress snapshot."""
    if state is None:
        return Panel("Waiting for first update…", title="OEM Unlock", border_style="dim")

    style = PHASE_STYLES[state.phase]
    ui_table = Table(
        title=f"IMEI {state.imei}  |  v{state.version}",
        show_header=False,
        border_style=style,
    )
    ui_table.add_column("Field", justify="right", style="bold")
    ui_table.add_column("Value")

    ui_table.add_row("Phase", f"[{style}]{state.phase.value}[/{style}]")
    ui_table.add_row("Current code", format_code(state.current_code))
    ui_table.add_row("Attempts", str(state.attempt_count))
    ui_table.add_row("Last checkpoint", f"attempt {state.last_checkpoint_attempt}")
    ui_table.add_row("Last reboot", f"attempt {state.last_reboot_attempt}")
    ui_table.add_row("Code space", f"{state.progress_percent:.6f} %")
    if state.started_at:
        now = time.monotonic() if now is None else now
        elapsed = int(max(now - state.started_at, 0))
        ui_table.add_row("Elapsed", f"{elapsed // 3600}:{elapsed % 3600 // 60:02d}:{elapsed % 60:02d}")
        ui_table.add_row("Rate", f"{state.attempts_per_minute(now):.1f} attempts/min")
    if state.last_output:
        ui_table.add_row("Device output", state.last_output.splitlines()[-1][:80])

    return ui_table


def ui_loop(state_queue: SingleSlotQueue[SearchSnapshot], tick: float = 1.0) -> None:
    """Redraw the panel until the engine closes the queue."""
    state: Optional[SearchSnapshot] = None
    with Live(render(None), refresh_per_second=10, screen=False) as live:
        while True:
            try:
                update = state_queue.get(timeout=tick)
            except TimeoutError:
                # A reboot or attempt can block for a while, keep the clock moving.
                live.update(render(state))
                continue
            if update is None:
                break
            state = update
            live.update(render(state))
