import threading
import time

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from oem_unlocker.snapshot import Phase, SearchSnapshot
from oem_unlocker.state_queue import SingleSlotQueue
from oem_unlocker.ui import render, ui_loop


def make_snapshot(**kwargs) -> SearchSnapshot:
    values = dict(
        version=7,
        phase=Phase.ATTEMPTING,
        imei=123456789012345,
        current_code=1000000011377778,
        start_code=1000000000000000,
        ceiling=10000000000000000,
        attempt_count=1,
        last_checkpoint_attempt=0,
        last_reboot_attempt=0,
        last_output="failed (remote: 'check password failed!')",
    )
    values.update(kwargs)
    return SearchSnapshot(**values)


class TestSearchSnapshot:
    """Test suite for the progress snapshot"""

    def test_progress_percent(self):
        assert make_snapshot(current_code=1000000000000000).progress_percent == 0.0
        assert make_snapshot(current_code=5500000000000000).progress_percent == 50.0

    def test_progress_is_clamped(self):
        assert make_snapshot(current_code=0).progress_percent == 0.0
        assert make_snapshot(current_code=10 ** 17).progress_percent == 100.0

    def test_terminal_phases(self):
        assert Phase.SUCCEEDED.terminal
        assert Phase.CANCELLED.terminal
        assert not Phase.ATTEMPTING.terminal


class TestRender:
    """Test suite for the live panel"""

    def test_waiting(self):
        assert isinstance(render(None), Panel)

    def test_renders_snapshot(self):
        table = render(make_snapshot())
        assert isinstance(table, Table)

        console = Console(record=True, width=120)
        console.print(table)
        text = console.export_text()
        assert "1000000011377778" in text
        assert "attempting" in text
        assert "check password failed" in text

    def test_elapsed_and_rate(self):
        snapshot = make_snapshot(attempt_count=60, started_at=1000.0)
        assert snapshot.attempts_per_minute(1120.0) == 30.0

        console = Console(record=True, width=120)
        console.print(render(snapshot, now=1120.0))
        text = console.export_text()
        assert "0:02:00" in text
        assert "30.0 attempts/min" in text

    def test_no_clock_before_start(self):
        snapshot = make_snapshot()
        assert snapshot.attempts_per_minute(50.0) == 0.0
        console = Console(record=True, width=120)
        console.print(render(snapshot))
        assert "Elapsed" not in console.export_text()


class TestUiLoop:
    """Test suite for the redraw loop"""

    def test_keeps_redrawing_until_closed(self):
        queue = SingleSlotQueue()

        def engine():
            # Longer than several ticks, the loop must not give up on a slow device.
            time.sleep(0.2)
            queue.publish(make_snapshot(started_at=time.monotonic()))
            queue.close()

        worker = threading.Thread(target=engine)
        worker.start()
        ui_loop(queue, tick=0.01)
        worker.join(timeout=5)
        assert not worker.is_alive()
