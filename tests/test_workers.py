"""Background worker tests — keepalive ping and presence sweeper."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from vaultsync.events.types import PING
from vaultsync.realtime.hub import BroadcastHub
from vaultsync.realtime.keepalive import KeepaliveWorker
from vaultsync.services.preferences import PreferencesService
from vaultsync.services.presence import PresenceTracker
from vaultsync.services.presence_sweeper import PresenceSweeper


@pytest.mark.asyncio
async def test_keepalive_pings_every_interval(clock):
    hub = BroadcastHub()
    sub = hub.subscribe()
    worker = KeepaliveWorker(hub, interval=30, clock=clock)
    task = asyncio.create_task(worker.run_loop())

    await clock.advance(29)
    assert sub.pending == 0

    await clock.advance(1)
    assert sub.pending == 1
    assert (await sub.get()).type == PING

    await clock.advance(60)
    assert sub.pending == 2

    worker.stop()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


@pytest.mark.asyncio
async def test_keepalive_stop_prevents_further_pings(clock):
    hub = BroadcastHub()
    sub = hub.subscribe()
    worker = KeepaliveWorker(hub, interval=30, clock=clock)
    task = asyncio.create_task(worker.run_loop())
    await clock.advance(0)

    worker.stop()
    await clock.advance(30)

    assert task.done()
    assert sub.pending == 0


@pytest.mark.asyncio
async def test_sweeper_purges_only_long_dead_sessions(db_engine, db_session, clock):
    await PreferencesService(db_session).get_or_create_device("device_a")
    tracker = PresenceTracker(db_session, clock=clock, ttl=timedelta(minutes=5))
    await tracker.heartbeat("device_a", "old")
    await clock.advance(20 * 60)
    await tracker.heartbeat("device_a", "recent")
    await clock.advance(6 * 60)  # stale but within retention

    sweeper = PresenceSweeper(
        ttl=timedelta(minutes=5),
        retention_windows=3,
        clock=clock,
        session_factory=async_sessionmaker(db_engine, expire_on_commit=False),
    )

    assert await sweeper.sweep_once() == 1
    assert await sweeper.sweep_once() == 0


@pytest.mark.asyncio
async def test_sweeper_loop_runs_on_interval(db_engine, clock):
    sweeps = []
    sweeper = PresenceSweeper(
        ttl=timedelta(minutes=5),
        interval=600,
        clock=clock,
        session_factory=async_sessionmaker(db_engine, expire_on_commit=False),
    )

    async def counting_sweep():
        sweeps.append(clock.monotonic())
        return 0

    sweeper.sweep_once = counting_sweep
    task = asyncio.create_task(sweeper.run_loop())

    await clock.advance(1200)
    sweeper.stop()
    await clock.advance(600)

    assert sweeps == [0, 600, 1200]
    assert task.done()
