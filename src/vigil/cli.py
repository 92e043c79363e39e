"""Command-line interface."""

from __future__ import annotations

import copy
import json
import sys

import click
import structlog
from rich.console import Console
from rich.table import Table

from vigil import __version__
from vigil.config import AppConfig, configure_logging, get_config

logger = structlog.get_logger(__name__)
console = Console()


def _load_config(config_path: str | None) -> AppConfig:
	return AppConfig.load(config_path) if config_path else get_config()


@click.group()
@click.version_option(version=__version__)
def main() -> None:
	"""Vigil - debounced presence and intrusion detection."""
	pass


@main.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="JSON config file")
@click.option("--threshold", type=float, help="Override confirm threshold (ms)")
@click.option("--grace", type=float, help="Override grace period (ms)")
@click.option("--cooldown", type=float, help="Override cooldown (ms)")
@click.option("--log-level", default="WARNING", help="Log level for engine output")
@click.option("--seed", type=int, default=7, help="Seed for the synthetic accelerometer")
def simulate(
	config_path: str | None,
	threshold: float | None,
	grace: float | None,
	cooldown: float | None,
	log_level: str,
	seed: int,
) -> None:
	"""Replay a scripted scenario through the engines and list the alerts."""
	from vigil.detection.motion import MotionIntrusionConfirmer
	from vigil.dispatch import RecordingDispatcher
	from vigil.monitor import PresenceMonitor
	from vigil.sources import MockAccelerometer, ScriptedSource, SeenDevice, SourceKind
	from vigil.sources.mock import MockAccelerometerConfig

	configure_logging(log_level)
	# Overrides below must not leak into the shared instance
	config = copy.deepcopy(_load_config(config_path))
	if threshold is not None:
		config.detection.confirm_threshold_ms = threshold
	if grace is not None:
		config.detection.grace_period_ms = grace
	if cooldown is not None:
		config.detection.cooldown_ms = cooldown

	errors = config.validate()
	if errors:
		for e in errors:
			console.print(f"[red]{e}[/]")
		sys.exit(1)

	dispatcher = RecordingDispatcher()
	monitor = PresenceMonitor(dispatcher, config)
	guard = MotionIntrusionConfirmer(dispatcher, config.motion)

	monitor.start(0)
	monitor.add_channel("front", name="Front door")

	# Person in frame with a one-tick glitch, then a failed read
	camera = ScriptedSource.from_runs(
		"camera:front",
		[(0, 2000, True), (2000, 2500, False), (2500, 7000, True), (7000, 7500, None), (7500, 9000, False)],
		interval_ms=500,
	)
	phone = SeenDevice("aa:bb:cc:dd:ee:01", "Phone", -55, SourceKind.BLUETOOTH)
	router = SeenDevice("aa:bb:cc:dd:ee:02", "Router", -70, SourceKind.WIFI)

	guard.arm(0)
	accel = MockAccelerometer(shakes=[(2000, 2500), (6000, 6500)], config=MockAccelerometerConfig(seed=seed))
	samples = {now: (x, y, z) for x, y, z, now in accel.samples(0, 9000, 100)}

	frames = {sample.observed_at: sample for sample in camera.replay()}
	timeline = sorted(set(frames) | set(samples) | {0.0, 3000.0, 6000.0})
	for now in timeline:
		if now in frames:
			monitor.report_sample(frames[now])
		if now % 3000 == 0:
			monitor.report_scan("wifi", [router], now)
		if now % 10000 == 0:
			monitor.report_scan("bluetooth", [phone], now)
		if now in samples:
			guard.on_sensor_sample(*samples[now], now)
		if now == 8000:
			guard.on_power_disconnected(now)

	end = 120_000.0
	monitor.tick(end)
	console.print(monitor.describe(end))

	table = Table(title="Alerts")
	table.add_column("t (ms)", justify="right", style="cyan")
	table.add_column("Kind", style="magenta")
	table.add_column("Title", style="green")
	table.add_column("Detail", style="yellow")
	rows: list[tuple[float, str, str, str]] = []
	for alert in dispatcher.alerts:
		rows.append((alert.raised_at, alert.kind.value, alert.title, alert.message))
	for event in dispatcher.confirmations:
		rows.append((event.confirmed_at, "person", event.confirmer_id, f"after {event.elapsed_ms:.0f}ms"))
	for reason, at in dispatcher.intrusions:
		rows.append((at, "intrusion", reason, ""))
	for at, kind, title, detail in sorted(rows, key=lambda r: r[0]):
		table.add_row(f"{at:.0f}", kind, title, detail)
	console.print(table)
	logger.info("simulation_finished", alerts=len(rows))

	guard.disarm(end)
	monitor.stop()


@main.command(name="config")
@click.option("--config", "config_path", type=click.Path(exists=True), help="JSON config file")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
def show_config(config_path: str | None, as_json: bool) -> None:
	"""Show the effective configuration and any validation errors."""
	config = _load_config(config_path)
	data = config.to_dict()

	if as_json:
		click.echo(json.dumps(data, indent=2))
	else:
		table = Table(title="Configuration")
		table.add_column("Setting", style="cyan")
		table.add_column("Value", style="green")
		for section, values in data.items():
			for key, value in values.items():
				table.add_row(f"{section}.{key}", str(value))
		console.print(table)

	errors = config.validate()
	if errors:
		for e in errors:
			console.print(f"[red]{e}[/]")
		sys.exit(1)


if __name__ == "__main__":
	main()
