"""Tests for detached background tasks."""
import asyncio
import logging

import pytest

from cylink.services import background


@pytest.mark.asyncio
async def test_spawn_does_not_block_caller():
    gate = asyncio.Event()
    ran = []

    async def job():
        await gate.wait()
        ran.append(True)

    background.spawn(job(), name="gated")
    assert background.pending_count() == 1
    assert ran == []

    gate.set()
    await background.drain()
    assert ran == [True]
    assert background.pending_count() == 0


@pytest.mark.asyncio
async def test_failure_is_logged_not_raised(caplog):
    async def job():
        raise RuntimeError("analytics store offline")

    with caplog.at_level(logging.ERROR, logger="cylink.services.background"):
        background.spawn(job(), name="doomed")
        await background.drain()

    assert "doomed failed: analytics store offline" in caplog.text


@pytest.mark.asyncio
async def test_drain_waits_for_tasks_spawned_while_draining():
    ran = []

    async def child():
        ran.append("child")

    async def parent():
        await asyncio.sleep(0)
        background.spawn(child(), name="child")
        ran.append("parent")

    background.spawn(parent(), name="parent")
    await background.drain()
    assert ran == ["parent", "child"]


@pytest.mark.asyncio
async def test_drain_gives_up_after_timeout(caplog):
    gate = asyncio.Event()

    async def stuck():
        await gate.wait()

    task = background.spawn(stuck(), name="stuck")
    await background.drain(timeout=0.05)
    assert "Gave up draining 1" in caplog.text

    gate.set()
    await task
