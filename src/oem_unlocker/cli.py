import os
import sys
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import NoReturn, Optional

import click

from oem_unlocker.config import BruteforceConfig, load_config
from oem_unlocker.device import DeviceController, FastbootDevice, SimulatedDevice
from oem_unlocker.engine import (
    BruteforceEngine,
    RunOutcome,
    RunStatus,
    install_termination_hook,
    restore_signal_handlers,
)
from oem_unlocker.errors import ConfigError
from oem_unlocker.generator import START_CODE, next_code
from oem_unlocker.logs import configure_logging
from oem_unlocker.snapshot import SearchSnapshot
from oem_unlocker.state_queue import SingleSlotQueue
from oem_unlocker.store import StateStore
from oem_unlocker.ui import ui_loop

EXIT_CODES = {
    RunStatus.SUCCEEDED: 0,
    RunStatus.EXHAUSTED: 1,
    RunStatus.FAILED: 1,
    RunStatus.CANCELLED: 130,
}


@click.group()
def cli():
    pass


def device_options(fn):
    """Options shared by every command that needs to know which device it works on."""
    fn = click.option("--state-dir", type=click.Path(file_okay=False), default=None,
                      help="Directory holding the checkpoint and result files.")(fn)
    fn = click.option("--imei", "-i", type=int, default=None, help="Device IMEI, overrides the config file.")(fn)
    fn = click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), default="config.json",
                      show_default=True, help="JSON config file (imei, autorebootAfter, saveStateAfter, throwOnUnknownErrors).")(fn)
    return fn


def build_config(config_path: Optional[str], **overrides) -> BruteforceConfig:
    try:
        return load_config(config_path, **overrides)
    except ConfigError as e:
        raise click.BadParameter(str(e), param_hint="config") from e


def supervise(engine: BruteforceEngine, state_queue: Optional[SingleSlotQueue[SearchSnapshot]]) -> RunOutcome:
    """
    Run the engine on a worker thread while the main thread draws the UI and receives signals.
    The first signal asks the engine to checkpoint and stop. A second one ends the process
    at once, without waiting for a device call that may never return.
    """
    previous_handlers = install_termination_hook(engine.cancel_event)
    try:
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(engine.run)
            try:
                if state_queue is not None:
                    ui_loop(state_queue)
                return future.result()
            except KeyboardInterrupt:
                force_exit(engine)
    finally:
        restore_signal_handlers(previous_handlers)


def force_exit(engine: BruteforceEngine) -> NoReturn:
    """Leave without joining the worker thread, which may be blocked in a device call."""
    state = engine.state
    click.secho("Interrupted again, exiting without waiting for the device.", fg="red", err=True)
    if state is not None and state.last_checkpoint_attempt:
        click.echo(f"Last checkpoint: attempt {state.last_checkpoint_attempt}", err=True)
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(EXIT_CODES[RunStatus.CANCELLED])


def report(outcome: RunOutcome, config: BruteforceConfig, store: StateStore) -> int:
    if outcome.status is RunStatus.SUCCEEDED:
        click.secho(f"Success! The code is: {outcome.code}", fg="green", bold=True)
        click.echo(f"Saved to {store.result_path(config.imei)}")
    elif outcome.status is RunStatus.CANCELLED:
        click.secho(f"Interrupted after {outcome.attempts} attempts.", fg="yellow")
        if outcome.code is not None:
            click.echo(f"Progress saved at code {outcome.code} in {store.checkpoint_path(config.imei)}")
    else:
        click.secho(f"{outcome.status.value.capitalize()}: {outcome.error}", fg="red", err=True)
    return EXIT_CODES[outcome.status]


def execute(config: BruteforceConfig, device: DeviceController, store: StateStore, show_ui: bool) -> int:
    state_queue: Optional[SingleSlotQueue[SearchSnapshot]] = SingleSlotQueue() if show_ui else None
    engine = BruteforceEngine(
        config,
        device,
        store,
        cancel_event=threading.Event(),
        state_queue=state_queue,
    )
    outcome = supervise(engine, state_queue)
    return report(outcome, config, store)


@cli.command()
@device_options
@click.option("--reboot-every", type=int, default=None, help="Reboot into the bootloader every N attempts (0 disables).")
@click.option("--save-every", type=int, default=None, help="Save a checkpoint every N attempts (0 disables).")
@click.option("--strict/--permissive", "strict_output", default=None,
              help="Abort on unrecognized device output instead of treating it as a wrong code.")
@click.option("--adb", "adb_path", default=None, help="Path to the adb binary.")
@click.option("--fastboot", "fastboot_path", default=None, help="Path to the fastboot binary.")
@click.option("--no-ui", is_flag=True, help="Log only, without the live progress panel.")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines.")
@click.option("--verbose", "-v", is_flag=True, help="Log raw device output.")
@click.pass_context
def run(ctx, config_path, imei, state_dir, reboot_every, save_every, strict_output,
        adb_path, fastboot_path, no_ui, json_logs, verbose):
    """Search for the bootloader unlock code of a connected device."""
    configure_logging(json_output=json_logs, verbose=verbose)
    config = build_config(
        config_path,
        imei=imei,
        state_dir=state_dir,
        reboot_every=reboot_every,
        save_every=save_every,
        strict_output=strict_output,
        adb_path=adb_path,
        fastboot_path=fastboot_path,
    )
    store = StateStore(config.state_dir)
    device = FastbootDevice(config.adb_path, config.fastboot_path, poll_interval=config.poll_interval)
    ctx.exit(execute(config, device, store, show_ui=not no_ui))


@cli.command()
@device_options
def status(config_path, imei, state_dir):
    """Show the saved progress and result for a device."""
    config = build_config(config_path, imei=imei, state_dir=state_dir)
    store = StateStore(config.state_dir)

    result = store.load_result(config.imei)
    if result is not None:
        click.secho(f"Unlock code found: {result}", fg="green", bold=True)

    checkpoint = store.load(config.imei)
    if checkpoint is None:
        click.echo(f"No checkpoint for IMEI {config.imei}, a run starts at {config.start_code}.")
        return
    click.echo(f"Last saved code: {checkpoint}")
    click.echo(f"Next code:       {next_code(checkpoint, config.imei)}")


@cli.command()
@device_options
def reset(config_path, imei, state_dir):
    """Delete the checkpoint so the next run starts from the beginning."""
    config = build_config(config_path, imei=imei, state_dir=state_dir)
    store = StateStore(config.state_dir)
    if store.clear_checkpoint(config.imei):
        click.echo(f"Removed {store.checkpoint_path(config.imei)}")
    else:
        click.echo(f"No checkpoint for IMEI {config.imei}")


@cli.command()
@click.option("--imei", "-i", type=click.IntRange(min=1), required=True)
@click.option("--from", "from_code", type=click.IntRange(min=0), default=START_CODE, show_default=True)
@click.option("--count", "-n", type=click.IntRange(min=1), default=10, show_default=True)
def sequence(imei, from_code, count):
    """Print the next candidate codes for a device."""
    code = from_code
    for _ in range(count):
        code = next_code(code, imei)
        click.echo(code)


@cli.command()
@click.option("--imei", "-i", type=click.IntRange(min=1), default=123456789012345, show_default=True)
@click.option("--secret-index", "-k", type=click.IntRange(min=1), default=25, show_default=True,
              help="The simulated device unlocks on the K-th candidate.")
@click.option("--start-code", type=click.IntRange(min=0), default=START_CODE, show_default=True)
@click.option("--reboot-every", type=click.IntRange(min=0), default=5, show_default=True,
              help="The simulated device locks out after this many attempts without a reboot.")
@click.option("--save-every", type=click.IntRange(min=0), default=10, show_default=True)
@click.option("--state-dir", type=click.Path(file_okay=False), default=None,
              help="Keep state files here instead of a temporary directory.")
@click.option("--no-ui", is_flag=True)
@click.pass_context
def demo(ctx, imei, secret_index, start_code, reboot_every, save_every, state_dir, no_ui):
    """Run the search against a simulated device."""
    configure_logging()
    secret = start_code
    for _ in range(secret_index):
        secret = next_code(secret, imei)
    device = SimulatedDevice(secret, lockout_after=reboot_every or None)

    with tempfile.TemporaryDirectory(prefix="oem-unlocker-") as tmp_dir:
        config = build_config(
            None,
            imei=imei,
            start_code=start_code,
            reboot_every=reboot_every,
            save_every=save_every,
            state_dir=state_dir or tmp_dir,
        )
        exit_code = execute(config, device, StateStore(config.state_dir), show_ui=not no_ui)
        click.echo(f"Simulated device: {device.attempts} attempts, {device.reboots} reboots")
    ctx.exit(exit_code)


if __name__ == "__main__":
    cli()
