import asyncio

import pytest

from helpdesk.core.outbound import OutboundJob, OutboundQueue


@pytest.mark.asyncio
async def test_jobs_are_processed_in_order():
    seen = []

    async def handler(payload):
        seen.append(payload["n"])

    queue = OutboundQueue({"note": handler})
    await queue.start()
    try:
        for n in range(3):
            assert queue.submit(OutboundJob("note", {"n": n})) is True
        await asyncio.wait_for(queue.join(), timeout=2)
    finally:
        await queue.stop()

    assert seen == [0, 1, 2]
    assert queue.running is False


@pytest.mark.asyncio
async def test_unknown_kind_is_dropped():
    queue = OutboundQueue()
    assert queue.submit(OutboundJob("mystery")) is False
    assert queue.dropped == 1
    assert queue.pending() == 0


@pytest.mark.asyncio
async def test_full_queue_drops_without_blocking():
    async def handler(payload):
        return None

    queue = OutboundQueue({"note": handler}, maxsize=1)
    assert queue.submit(OutboundJob("note")) is True
    assert queue.submit(OutboundJob("note")) is False
    assert queue.dropped == 1


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_worker(caplog):
    seen = []

    async def flaky(payload):
        if payload.get("boom"):
            raise RuntimeError("channel down")
        seen.append(payload)

    queue = OutboundQueue({"note": flaky})
    await queue.start()
    try:
        queue.submit(OutboundJob("note", {"boom": True}))
        queue.submit(OutboundJob("note", {"ok": True}))
        await asyncio.wait_for(queue.join(), timeout=2)
    finally:
        await queue.stop()

    assert seen == [{"ok": True}]
    assert "Outbound note job failed" in caplog.text


@pytest.mark.asyncio
async def test_jobs_submitted_before_start_are_kept():
    seen = []

    async def handler(payload):
        seen.append(payload)

    queue = OutboundQueue()
    queue.register("note", handler)
    queue.submit(OutboundJob("note", {"early": True}))

    await queue.start()
    try:
        await asyncio.wait_for(queue.join(), timeout=2)
    finally:
        await queue.stop()

    assert seen == [{"early": True}]
