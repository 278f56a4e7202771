"""Unit tests for QuoteRequestService."""

from datetime import timedelta
from uuid import uuid4

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select

from vilo.core.clock import today, utcnow
from vilo.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from vilo.models import QuoteRequest
from vilo.schemas.quote_request import CreateQuoteRequest
from vilo.services.booking_service import BookingService
from vilo.services.quote_request_service import QuoteRequestService


@pytest.fixture
def quote_request(catalog):
    def build(**overrides) -> CreateQuoteRequest:
        data = {
            "property_id": catalog.property.id,
            "guest_name": "Lerato Dlamini",
            "guest_email": "Lerato@Example.com",
            "preferred_check_in": today() + timedelta(days=60),
            "preferred_check_out": today() + timedelta(days=63),
            "adults_count": 4,
            "children_count": 2,
            "group_type": "family",
        }
        data.update(overrides)
        return CreateQuoteRequest(**data)

    return build


class TestCreateQuoteRequest:
    @pytest.mark.asyncio
    async def test_create(self, test_session, catalog, quote_request, guest):
        quote = await QuoteRequestService(test_session).create_quote_request(quote_request(), guest)

        assert quote.status == "pending"
        assert quote.group_size == 6
        assert quote.priority == 0
        assert quote.guest_email == "lerato@example.com"
        assert quote.currency == "ZAR"
        assert quote.company_id == catalog.company.id
        assert quote.user_id == guest["user_id"]
        assert quote.customer_id is not None
        assert quote.expires_at > utcnow() + timedelta(days=29)

    @pytest.mark.asyncio
    async def test_priority_for_large_wedding(self, test_session, quote_request):
        quote = await QuoteRequestService(test_session).create_quote_request(
            quote_request(adults_count=40, group_type="wedding", budget_max=8_000_000)
        )
        assert quote.priority == 3
        assert quote.user_id is None

    @pytest.mark.asyncio
    async def test_one_pending_request_per_guest(self, test_session, quote_request):
        service = QuoteRequestService(test_session)
        first = await service.create_quote_request(quote_request())

        with pytest.raises(ConflictError) as exc_info:
            await service.create_quote_request(quote_request(guest_email="lerato@example.com"))
        assert exc_info.value.details["quote_request_id"] == str(first.id)

    @pytest.mark.asyncio
    async def test_inactive_property(self, test_session, catalog, quote_request):
        catalog.property.is_active = False
        await test_session.commit()

        with pytest.raises(NotFoundError):
            await QuoteRequestService(test_session).create_quote_request(quote_request())

    @pytest.mark.asyncio
    async def test_unknown_property(self, test_session, quote_request):
        with pytest.raises(NotFoundError):
            await QuoteRequestService(test_session).create_quote_request(quote_request(property_id=uuid4()))

    def test_exact_dates_are_required(self, quote_request):
        with pytest.raises(SchemaValidationError):
            quote_request(preferred_check_in=None)
        with pytest.raises(SchemaValidationError):
            quote_request(budget_min=500, budget_max=100)

    def test_flexible_dates(self, quote_request):
        start = today() + timedelta(days=10)
        quote = quote_request(
            date_flexibility="flexible",
            preferred_check_in=None,
            preferred_check_out=None,
            flexible_date_start=start,
            flexible_date_end=start + timedelta(days=30),
            nights_count=3,
        )
        assert quote.nights_count == 3


class TestOwnerWorkflow:
    @pytest.mark.asyncio
    async def test_respond_then_convert(self, test_session, quote_request, booking_request, guest, owner):
        service = QuoteRequestService(test_session)
        quote = await service.create_quote_request(quote_request(), guest)

        responded = await service.respond(quote.id, "We can host you in the garden suite.", owner)
        assert responded.status == "responded"
        assert responded.responded_by == owner["user_id"]
        assert responded.responded_at is not None

        # Updating the response keeps the status
        responded = await service.respond(quote.id, "Updated offer attached.", owner)
        assert responded.status == "responded"
        assert responded.owner_response == "Updated offer attached."

        booking = await BookingService(test_session).create_booking(booking_request(), guest)
        converted = await service.convert_to_booking(quote.id, booking.id, owner)
        assert converted.status == "converted"
        assert converted.booking_id == booking.id
        assert converted.converted_at is not None

        with pytest.raises(ValidationError):
            await service.respond(quote.id, "Too late", owner)

    @pytest.mark.asyncio
    async def test_convert_pending_directly(self, test_session, quote_request, booking_request, guest, owner):
        service = QuoteRequestService(test_session)
        quote = await service.create_quote_request(quote_request(), guest)
        booking = await BookingService(test_session).create_booking(booking_request(), guest)

        converted = await service.convert_to_booking(quote.id, booking.id, owner)
        assert converted.status == "converted"

    @pytest.mark.asyncio
    async def test_convert_requires_existing_booking(self, test_session, quote_request, owner):
        service = QuoteRequestService(test_session)
        quote = await service.create_quote_request(quote_request())
        with pytest.raises(NotFoundError):
            await service.convert_to_booking(quote.id, uuid4(), owner)

    @pytest.mark.asyncio
    async def test_invalid_transition(self, test_session, quote_request, owner):
        service = QuoteRequestService(test_session)
        quote = await service.create_quote_request(quote_request())

        declined = await service.update_status(quote.id, "declined", owner)
        assert declined.status == "declined"

        with pytest.raises(ValidationError) as exc_info:
            await service.update_status(quote.id, "responded", owner)
        assert exc_info.value.details["allowed_transitions"] == []

    @pytest.mark.asyncio
    async def test_only_owner_manages(self, test_session, quote_request, guest):
        service = QuoteRequestService(test_session)
        quote = await service.create_quote_request(quote_request(), guest)
        with pytest.raises(ForbiddenError):
            await service.respond(quote.id, "Sure", guest)


class TestListingAndStats:
    @pytest.mark.asyncio
    async def test_lists(self, test_session, quote_request, guest, owner, other_user, admin):
        service = QuoteRequestService(test_session)
        await service.create_quote_request(quote_request(guest_email=guest["email"]))
        await service.create_quote_request(
            quote_request(guest_email="events@corp.example", group_type="conference", adults_count=50)
        )

        items, total = await service.list_quote_requests(owner)
        assert total == 2
        assert items[0].group_type == "conference"

        _, total = await service.list_quote_requests(other_user)
        assert total == 0
        _, total = await service.list_quote_requests(admin, search="CORP.example")
        assert total == 1

        mine = await service.list_my_quote_requests(guest)
        assert [q.guest_email for q in mine] == [guest["email"]]

    @pytest.mark.asyncio
    async def test_stats(self, test_session, quote_request, booking_request, guest, owner):
        service = QuoteRequestService(test_session)
        first = await service.create_quote_request(quote_request(budget_max=200000), guest)
        await service.create_quote_request(
            quote_request(guest_email="team@corp.example", adults_count=10, children_count=0, budget_max=400000)
        )
        booking = await BookingService(test_session).create_booking(booking_request(), guest)
        await service.convert_to_booking(first.id, booking.id, owner)

        stats = await service.get_stats(owner)
        assert stats["total"] == 2
        assert stats["by_status"] == {"converted": 1, "pending": 1}
        assert stats["average_group_size"] == 8.0
        assert stats["average_budget"] == 300000.0
        assert stats["conversion_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_stats_without_requests(self, test_session, owner):
        stats = await QuoteRequestService(test_session).get_stats(owner)
        assert stats["total"] == 0
        assert stats["average_group_size"] == 0.0
        assert stats["conversion_rate"] == 0.0


@pytest.mark.asyncio
async def test_expire_old_quote_requests(test_session, quote_request, owner):
    service = QuoteRequestService(test_session)
    stale = await service.create_quote_request(quote_request())
    fresh = await service.create_quote_request(quote_request(guest_email="fresh@example.com"))
    stale.expires_at = utcnow() - timedelta(minutes=1)
    await test_session.commit()

    assert await service.expire_old_quote_requests() == 1
    assert await service.expire_old_quote_requests() == 0

    rows = await test_session.execute(select(QuoteRequest.id, QuoteRequest.status))
    statuses = {row.id: row.status for row in rows}
    assert statuses[stale.id] == "expired"
    assert statuses[fresh.id] == "pending"
