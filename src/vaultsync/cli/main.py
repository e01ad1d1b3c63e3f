"""vaultsync CLI — watch the event stream, inspect presence, edit preferences.

Usage:
    vaultsync device                              # This installation's device id
    vaultsync watch                               # Follow the event stream (Ctrl-C to stop)
    vaultsync viewers x1                          # Who is looking at item x1
    vaultsync heartbeat x1 --follow               # Keep a presence session alive
    vaultsync prefs                               # Show preferences
    vaultsync prefs --set privacy_mode=true       # Change a preference (broadcasts)
    vaultsync publish item-unlocked --payload '{"id": "x1"}'
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import sys
from typing import Optional

import click
from pydantic.alias_generators import to_snake

from vaultsync import __version__
from vaultsync.client.api import SyncApi
from vaultsync.client.config import ClientSettings
from vaultsync.client.device import get_device_id, get_device_name, reset_device_id
from vaultsync.client.engine import Backoff, ConnectionState, SyncEngine
from vaultsync.client.presence import ActiveSession
from vaultsync.client.settings_store import DEFAULT_SETTINGS, from_wire
from vaultsync.errors import VaultSyncError

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _settings() -> ClientSettings:
    return ClientSettings()


def _api(cfg: ClientSettings) -> SyncApi:
    """Build the HTTP wrapper pointed at the vaultsync server."""
    return SyncApi(cfg.api_url, timeout=cfg.request_timeout_seconds)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _device_id(cfg: ClientSettings, device_id: Optional[str]) -> str:
    return device_id or get_device_id(cfg.device_id_path)


def _fail(message: str):
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _state_color(state: ConnectionState) -> str:
    colors = {
        ConnectionState.CONNECTED: "green",
        ConnectionState.CONNECTING: "yellow",
        ConnectionState.RETRYING: "red",
        ConnectionState.DISCONNECTED: "white",
    }
    return colors.get(state, "white")


def _parse_assignment(raw: str) -> tuple[str, object]:
    """'privacy_mode=true' → ('privacy_mode', True). Values are JSON when they parse."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise click.BadParameter(f"expected key=value, got {raw!r}")
    name = to_snake(key.strip())
    if name not in DEFAULT_SETTINGS:
        raise click.BadParameter(f"unknown setting {key!r}")
    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = value
    return name, parsed


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="vaultsync")
def main():
    """vaultsync — real-time sync for the time-lock vault."""


# ---------------------------------------------------------------------------
# vaultsync device
# ---------------------------------------------------------------------------


@main.command()
@click.option("--reset", is_flag=True, help="Forget the stored id and generate a new one")
def device(reset: bool):
    """Show this installation's device id."""
    cfg = _settings()
    device_id = reset_device_id(cfg.device_id_path) if reset else get_device_id(cfg.device_id_path)
    click.echo(device_id)
    click.echo(f"  {get_device_name()}  ({cfg.device_id_path})")


# ---------------------------------------------------------------------------
# vaultsync watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--device-id", "-d", help="Device id (defaults to this installation's)")
@click.option("--seconds", "-s", type=float, help="Stop after this many seconds")
def watch(device_id: Optional[str], seconds: Optional[float]):
    """Follow the event stream and print what it invalidates."""
    _run(_watch_impl(device_id, seconds))


async def _watch_impl(device_id: Optional[str], seconds: Optional[float]):
    cfg = _settings()
    api = _api(cfg)
    engine = SyncEngine(
        api,
        _device_id(cfg, device_id),
        debounce_seconds=cfg.debounce_seconds,
        backoff=Backoff(cfg.backoff_initial_seconds, cfg.backoff_factor, cfg.backoff_max_seconds),
    )
    engine.add_state_listener(
        lambda state: click.secho(f"[{state.value}]", fg=_state_color(state))
    )
    engine.cache.add_listener(lambda prefix: click.echo(f"  invalidated {prefix}"))

    def _on_settings(snapshot: dict, origin: str):
        if origin == "remote":
            click.echo("  settings merged from another device")

    engine.settings.add_listener(_on_settings)

    click.secho(f"Watching as {engine.device_id}", bold=True)
    try:
        await engine.start()
        if seconds is not None:
            await asyncio.sleep(seconds)
        else:
            await asyncio.Event().wait()
    finally:
        await engine.stop()
        await api.aclose()


# ---------------------------------------------------------------------------
# vaultsync viewers
# ---------------------------------------------------------------------------


@main.command()
@click.argument("item_id")
def viewers(item_id: str):
    """List devices currently viewing ITEM_ID."""
    _run(_viewers_impl(item_id))


async def _viewers_impl(item_id: str):
    api = _api(_settings())
    try:
        rows = await api.list_viewers(item_id)
    except VaultSyncError as e:
        _fail(str(e))
    finally:
        await api.aclose()

    if not rows:
        click.echo(f"Nobody is viewing {item_id}.")
        return

    click.secho(f"Viewers of {item_id} ({len(rows)}):", bold=True)
    click.echo()
    _print_table(rows, [
        ("Device", "deviceId", 44),
        ("Last active", "lastActiveAt", 32),
    ])


# ---------------------------------------------------------------------------
# vaultsync heartbeat
# ---------------------------------------------------------------------------


@main.command()
@click.argument("item_id")
@click.option("--device-id", "-d", help="Device id (defaults to this installation's)")
@click.option("--release", is_flag=True, help="End the session instead of refreshing it")
@click.option("--follow", is_flag=True, help="Keep heartbeating until interrupted")
@click.option("--seconds", "-s", type=float, help="With --follow: stop after this many seconds")
def heartbeat(item_id: str, device_id: Optional[str], release: bool,
              follow: bool, seconds: Optional[float]):
    """Mark this device as viewing ITEM_ID."""
    _run(_heartbeat_impl(item_id, device_id, release, follow, seconds))


async def _heartbeat_impl(item_id: str, device_id: Optional[str], release: bool,
                          follow: bool, seconds: Optional[float]):
    cfg = _settings()
    api = _api(cfg)
    did = _device_id(cfg, device_id)
    try:
        if release:
            await api.release(did, item_id)
            click.secho(f"Released {item_id}", fg="green")
        elif follow:
            session = ActiveSession(
                api, did, item_id,
                interval=cfg.heartbeat_interval_seconds,
                release_timeout=cfg.release_timeout_seconds,
            )
            await session.mount()
            click.secho(f"Viewing {item_id} as {did} (every {cfg.heartbeat_interval_seconds:g}s)", fg="green")
            try:
                if seconds is not None:
                    await asyncio.sleep(seconds)
                else:
                    await asyncio.Event().wait()
            finally:
                pending = session.unmount()
                if pending is not None:
                    await pending
        else:
            row = await api.heartbeat(did, item_id)
            click.secho(f"Viewing {item_id} (last active {row['lastActiveAt']})", fg="green")
    except VaultSyncError as e:
        _fail(str(e))
    finally:
        await api.aclose()


# ---------------------------------------------------------------------------
# vaultsync prefs
# ---------------------------------------------------------------------------


@main.command()
@click.option("--device-id", "-d", help="Device id (defaults to this installation's)")
@click.option("--set", "assignments", multiple=True, metavar="KEY=VALUE",
              help="Change a setting (repeatable); values are parsed as JSON when possible")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def prefs(device_id: Optional[str], assignments: tuple[str, ...], as_json: bool):
    """Show or change this device's preferences."""
    changes = dict(_parse_assignment(a) for a in assignments)
    _run(_prefs_impl(device_id, changes, as_json))


async def _prefs_impl(device_id: Optional[str], changes: dict, as_json: bool):
    cfg = _settings()
    api = _api(cfg)
    did = _device_id(cfg, device_id)
    try:
        current = await api.fetch_preferences(did)
        if changes:
            merged = {**from_wire(current), **changes}
            current = await api.save_preferences(did, merged)
    except VaultSyncError as e:
        _fail(str(e))
    finally:
        await api.aclose()

    if as_json:
        click.echo(json.dumps(current, indent=2, default=str))
        return

    if changes:
        click.secho(f"Updated {', '.join(sorted(changes))}", fg="green")
    click.secho(f"Preferences for {did}:", bold=True)
    for name, value in sorted(from_wire(current).items()):
        if name == "api_token" and value:
            value = "********"
        click.echo(f"  {name:28s} {value}")


# ---------------------------------------------------------------------------
# vaultsync publish
# ---------------------------------------------------------------------------


@main.command()
@click.argument("event_type")
@click.option("--payload", "-p", default="{}", help="JSON payload")
def publish(event_type: str, payload: str):
    """Broadcast EVENT_TYPE to every connected device."""
    try:
        body = json.loads(payload)
    except ValueError:
        raise click.BadParameter("payload must be JSON", param_hint="--payload")
    _run(_publish_impl(event_type, body))


async def _publish_impl(event_type: str, payload: dict):
    api = _api(_settings())
    try:
        result = await api.publish(event_type, payload)
    except VaultSyncError as e:
        _fail(str(e))
    finally:
        await api.aclose()
    click.secho(f"{event_type} delivered to {result['delivered']} subscriber(s)", fg="green")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
