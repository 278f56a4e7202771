"""Unit tests for the background workers."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from vilo.core.clock import today, utcnow
from vilo.models import Booking, QuoteRequest
from vilo.schemas.quote_request import CreateQuoteRequest
from vilo.services.booking_service import BookingService
from vilo.services.quote_request_service import QuoteRequestService
from vilo.workers import AutoCheckoutWorker, BaseWorker, QuoteExpiryWorker
from vilo.workers.manager import WorkerManager


class CountingWorker(BaseWorker):
    def __init__(self, fail: bool = False):
        super().__init__(name="counting", interval_seconds=3600)
        self.calls = 0
        self.fail = fail

    async def process(self) -> int:
        self.calls += 1
        if self.fail:
            raise RuntimeError("boom")
        return self.calls


@pytest.mark.asyncio
async def test_run_once_propagates_errors():
    assert await CountingWorker().run_once() == 1
    with pytest.raises(RuntimeError):
        await CountingWorker(fail=True).run_once()


@pytest.mark.asyncio
async def test_failing_loop_keeps_running():
    worker = CountingWorker(fail=True)
    await worker.start()
    await asyncio.sleep(0.01)

    assert worker.is_running
    assert worker.calls == 1

    await worker.stop()
    assert not worker.is_running


@pytest.mark.asyncio
async def test_quote_expiry_worker(test_session, session_factory, catalog):
    quote = await QuoteRequestService(test_session).create_quote_request(
        CreateQuoteRequest(
            property_id=catalog.property.id,
            guest_name="Sipho Ndlovu",
            guest_email="sipho@example.com",
            preferred_check_in=today() + timedelta(days=5),
            preferred_check_out=today() + timedelta(days=7),
        )
    )
    quote.expires_at = utcnow() - timedelta(hours=1)
    await test_session.commit()

    worker = QuoteExpiryWorker(interval_seconds=60, session_factory=session_factory)
    assert await worker.run_once() == 1

    status = await test_session.scalar(select(QuoteRequest.status).where(QuoteRequest.id == quote.id))
    assert status == "expired"


@pytest.mark.asyncio
async def test_auto_checkout_worker(test_session, session_factory, booking_request, owner):
    service = BookingService(test_session)
    booking = await service.create_booking(
        booking_request(
            check_in_date=today() - timedelta(days=4),
            check_out_date=today() - timedelta(days=1),
            confirm=True,
        ),
        owner,
    )
    await service.check_in(booking.id, owner)

    worker = AutoCheckoutWorker(interval_seconds=60, session_factory=session_factory)
    assert await worker.run_once() == 1
    assert await worker.run_once() == 0

    status = await test_session.scalar(select(Booking.booking_status).where(Booking.id == booking.id))
    assert status == "checked_out"


def test_manager_registers_workers():
    manager = WorkerManager()
    assert manager.get_worker_status() == {"quote_expiry": False, "auto_checkout": False}
    assert isinstance(manager.get_worker("auto_checkout"), AutoCheckoutWorker)


@pytest.mark.asyncio
async def test_manager_respects_workers_enabled():
    manager = WorkerManager()
    await manager.start_all()
    assert not any(manager.get_worker_status().values())
    await manager.stop_all()
