"""Unit tests for API endpoints."""

from contextlib import asynccontextmanager
from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from vilo.core.clock import today
from vilo.core.config import settings
from vilo.services import invoice_service


async def create_booking(client, payload, headers):
    response = await client.post("/api/bookings", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestEnvelope:
    @pytest.mark.asyncio
    async def test_missing_token(self, test_client):
        response = await test_client.get("/api/bookings")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"]["code"] == "UNAUTHORIZED"
        assert body["meta"]["request_id"]

    @pytest.mark.asyncio
    async def test_malformed_token(self, test_client):
        response = await test_client.get("/api/bookings", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or malformed token"

    @pytest.mark.asyncio
    async def test_request_validation_lists_violations(self, test_client, booking_payload, guest, headers_for):
        payload = booking_payload(rooms=[])
        del payload["guest_name"]

        response = await test_client.post("/api/bookings", json=payload, headers=headers_for(guest))

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        paths = {v["path"] for v in error["details"]["violations"]}
        assert {"guest_name", "rooms"} <= paths

    @pytest.mark.asyncio
    async def test_unknown_booking(self, test_client, guest, headers_for):
        response = await test_client.get(f"/api/bookings/{uuid4()}", headers=headers_for(guest))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestPricingEndpoints:
    @pytest.mark.asyncio
    async def test_price_room(self, test_client, catalog):
        check_in = today() + timedelta(days=30)
        response = await test_client.post(
            f"/api/rooms/{catalog.suite.id}/price",
            json={
                "check_in": check_in.isoformat(),
                "check_out": (check_in + timedelta(days=3)).isoformat(),
                "adults": 2,
            },
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pricing_mode"] == "per_unit"
        assert data["nights"] == 3
        assert data["total"] == 300000
        assert data["currency"] == "ZAR"
        assert len(data["nightly_rates"]) == 3

    @pytest.mark.asyncio
    async def test_availability_follows_bookings(
        self, test_client, catalog, booking_payload, guest, headers_for
    ):
        payload = booking_payload()
        params = {"check_in": payload["check_in_date"], "check_out": payload["check_out_date"]}
        url = f"/api/rooms/{catalog.suite.id}/availability"

        response = await test_client.get(url, params=params)
        assert response.json()["data"]["available"] is True

        await create_booking(test_client, payload, headers_for(guest))

        data = (await test_client.get(url, params=params)).json()["data"]
        assert data["available"] is False
        assert data["booked_units"] == 1

    @pytest.mark.asyncio
    async def test_validate_coupon(self, test_client, catalog):
        body = {"code": "save10", "property_id": str(catalog.property.id), "booking_amount": 300000, "nights": 3}

        response = await test_client.post("/api/promotions/validate", json=body)
        data = response.json()["data"]
        assert data["valid"] is True
        assert data["discount_amount"] == 30000
        assert data["promotion"]["code"] == "SAVE10"

        response = await test_client.post("/api/promotions/validate", json={**body, "code": "BOGUS"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["valid"] is False
        assert data["promotion"] is None


class TestBookingEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_fetch(self, test_client, booking_payload, guest, other_user, headers_for):
        booking = await create_booking(test_client, booking_payload(), headers_for(guest))
        assert booking["total_amount"] == 345000
        assert booking["booking_status"] == "pending"
        assert booking["payment_status"] == "pending"

        response = await test_client.get(f"/api/bookings/{booking['id']}", headers=headers_for(guest))
        assert response.status_code == 200
        assert response.json()["data"]["booking_reference"] == booking["booking_reference"]

        response = await test_client.get(f"/api/bookings/{booking['id']}", headers=headers_for(other_user))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_idempotent_create(self, test_client, booking_payload, guest, headers_for):
        headers = headers_for(guest, **{"Idempotency-Key": "create-1"})

        first = await create_booking(test_client, booking_payload(), headers)
        second = await create_booking(test_client, booking_payload(), headers)
        assert second["id"] == first["id"]

        response = await test_client.get("/api/bookings", headers=headers_for(guest))
        assert response.json()["meta"]["total"] == 1

        response = await test_client.post(
            "/api/bookings", json=booking_payload(special_requests="Late arrival"), headers=headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["idempotency_key"] == "create-1"

    @pytest.mark.asyncio
    async def test_overbooking_is_refused(self, test_client, booking_payload, guest, other_user, headers_for):
        await create_booking(test_client, booking_payload(), headers_for(guest))

        response = await test_client.post(
            "/api/bookings",
            json=booking_payload(guest_email=other_user["email"]),
            headers=headers_for(other_user),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert "not available" in response.json()["error"]["message"]

    @pytest.mark.asyncio
    async def test_idempotent_payment_then_date_lock(
        self, test_client, booking_payload, guest, owner, headers_for
    ):
        booking = await create_booking(test_client, booking_payload(), headers_for(guest))
        url = f"/api/bookings/{booking['id']}/payments"
        headers = headers_for(owner, **{"Idempotency-Key": "pay-1"})
        payment = {"amount": 100000, "payment_method": "eft", "payment_reference": "EFT-778"}

        first = await test_client.post(url, json=payment, headers=headers)
        second = await test_client.post(url, json=payment, headers=headers)
        assert first.status_code == second.status_code == 201
        assert first.json()["data"]["id"] == second.json()["data"]["id"]

        response = await test_client.get(url, headers=headers_for(guest))
        assert len(response.json()["data"]) == 1

        response = await test_client.get(f"/api/bookings/{booking['id']}", headers=headers_for(guest))
        data = response.json()["data"]
        assert data["amount_paid"] == 100000
        assert data["balance_due"] == 245000
        assert data["payment_status"] == "partial"

        check_in = today() + timedelta(days=40)
        response = await test_client.put(
            f"/api/bookings/{booking['id']}/dates",
            json={"check_in_date": check_in.isoformat(), "check_out_date": (check_in + timedelta(days=2)).isoformat()},
            headers=headers_for(owner),
        )
        assert response.status_code == 423
        assert response.json()["error"]["code"] == "PAYMENT_LOCK"

    @pytest.mark.asyncio
    async def test_invoice_html(self, test_client, booking_payload, guest, headers_for):
        booking = await create_booking(test_client, booking_payload(), headers_for(guest))

        response = await test_client.get(f"/api/bookings/{booking['id']}/invoice", headers=headers_for(guest))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert booking["booking_reference"] in response.text
        assert "ZAR 3,450.00" in response.text

    @pytest.fixture
    def fake_chromium(self, monkeypatch):
        """Replace Playwright with an in-process browser that records its calls."""
        calls = SimpleNamespace(launch=None, content=None, pdf=None, closed=False, fail_launch=False)

        class FakePage:
            async def set_content(self, document, wait_until=None):
                calls.content = document

            async def pdf(self, **options):
                calls.pdf = options
                return b"%PDF-1.7 vilo invoice"

        class FakeBrowser:
            async def new_page(self):
                return FakePage()

            async def close(self):
                calls.closed = True

        class FakeChromium:
            async def launch(self, **options):
                if calls.fail_launch:
                    raise RuntimeError("Executable doesn't exist")
                calls.launch = options
                return FakeBrowser()

        @asynccontextmanager
        async def fake_async_playwright():
            yield SimpleNamespace(chromium=FakeChromium())

        monkeypatch.setattr(invoice_service, "async_playwright", fake_async_playwright)
        return calls

    @pytest.mark.asyncio
    async def test_invoice_pdf(self, test_client, booking_payload, guest, headers_for, fake_chromium):
        booking = await create_booking(test_client, booking_payload(), headers_for(guest))

        response = await test_client.get(
            f"/api/bookings/{booking['id']}/invoice", params={"format": "pdf"}, headers=headers_for(guest)
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == (
            f'attachment; filename="invoice-{booking["booking_reference"]}.pdf"'
        )
        assert response.content == b"%PDF-1.7 vilo invoice"
        assert fake_chromium.launch["headless"] is True
        assert fake_chromium.pdf["format"] == "A4"
        assert fake_chromium.pdf["print_background"] is True
        assert booking["booking_reference"] in fake_chromium.content
        assert fake_chromium.closed

    @pytest.mark.asyncio
    async def test_invoice_pdf_browser_failure(self, test_client, booking_payload, guest, headers_for, fake_chromium):
        fake_chromium.fail_launch = True
        booking = await create_booking(test_client, booking_payload(), headers_for(guest))

        response = await test_client.get(
            f"/api/bookings/{booking['id']}/invoice", params={"format": "pdf"}, headers=headers_for(guest)
        )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"


class TestQuoteRequestEndpoints:
    @pytest.fixture
    def quote_payload(self, catalog):
        def build(email):
            check_in = today() + timedelta(days=90)
            return {
                "property_id": str(catalog.property.id),
                "guest_name": "Retreat Organiser",
                "guest_email": email,
                "preferred_check_in": check_in.isoformat(),
                "preferred_check_out": (check_in + timedelta(days=4)).isoformat(),
                "adults_count": 12,
                "group_type": "retreat",
            }

        return build

    @pytest.mark.asyncio
    async def test_anonymous_submission(self, test_client, quote_payload, owner, headers_for):
        response = await test_client.post("/api/quote-requests", json=quote_payload("retreat@example.com"))
        assert response.status_code == 201
        quote = response.json()["data"]
        assert quote["priority"] == 1
        assert quote["status"] == "pending"

        response = await test_client.get("/api/quote-requests", headers=headers_for(owner))
        assert response.json()["meta"]["total"] == 1

        response = await test_client.post(
            f"/api/quote-requests/{quote['id']}/respond",
            json={"owner_response": "We would love to host you."},
            headers=headers_for(owner),
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "responded"

    @pytest.mark.asyncio
    async def test_rate_limit(self, test_client, quote_payload, monkeypatch):
        monkeypatch.setattr(settings, "quote_rate_limit_requests", 2)

        for n in range(2):
            response = await test_client.post("/api/quote-requests", json=quote_payload(f"group{n}@example.com"))
            assert response.status_code == 201

        response = await test_client.post("/api/quote-requests", json=quote_payload("group9@example.com"))
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
        error = response.json()["error"]
        assert error["code"] == "RATE_LIMITED"
        assert error["details"]["limit"] == 2

    @pytest.mark.asyncio
    async def test_forwarded_for_ignored_from_untrusted_peer(self, test_client, quote_payload, monkeypatch):
        monkeypatch.setattr(settings, "quote_rate_limit_requests", 2)

        statuses = []
        for n in range(5):
            response = await test_client.post(
                "/api/quote-requests",
                json=quote_payload(f"rotating{n}@example.com"),
                headers={"X-Forwarded-For": f"10.0.0.{n}", "X-Real-IP": f"10.0.1.{n}"},
            )
            statuses.append(response.status_code)

        assert statuses == [201, 201, 429, 429, 429]

    @pytest.mark.asyncio
    async def test_forwarded_for_honoured_from_trusted_proxy(self, test_client, quote_payload, monkeypatch):
        monkeypatch.setattr(settings, "quote_rate_limit_requests", 1)
        monkeypatch.setattr(settings, "trusted_proxies", ["127.0.0.1"])

        first = await test_client.post(
            "/api/quote-requests",
            json=quote_payload("a@example.com"),
            headers={"X-Forwarded-For": "203.0.113.7, 127.0.0.1"},
        )
        second = await test_client.post(
            "/api/quote-requests",
            json=quote_payload("b@example.com"),
            headers={"X-Forwarded-For": "203.0.113.8"},
        )
        repeat = await test_client.post(
            "/api/quote-requests",
            json=quote_payload("c@example.com"),
            headers={"X-Forwarded-For": "203.0.113.7"},
        )

        assert [first.status_code, second.status_code, repeat.status_code] == [201, 201, 429]


class TestRefundEndpoints:
    @pytest.mark.asyncio
    async def test_refund_flow(
        self, test_client, booking_payload, guest, owner, headers_for, gateway_calls
    ):
        booking = await create_booking(test_client, booking_payload(), headers_for(guest))
        response = await test_client.post(
            f"/api/bookings/{booking['id']}/payments",
            json={"amount": 345000, "payment_method": "paystack", "gateway_reference": "PSK-API-1"},
            headers=headers_for(owner),
        )
        assert response.status_code == 201

        response = await test_client.get(
            f"/api/bookings/{booking['id']}/refunds/eligibility", headers=headers_for(guest)
        )
        assert response.json()["data"]["suggested_amount"] == 345000

        response = await test_client.post(
            f"/api/bookings/{booking['id']}/refunds",
            json={"requested_amount": 345000, "reason": "Family emergency"},
            headers=headers_for(guest),
        )
        assert response.status_code == 201
        refund_id = response.json()["data"]["id"]

        response = await test_client.post(
            f"/api/refunds/{refund_id}/approve", json={}, headers=headers_for(owner)
        )
        assert response.json()["data"]["status"] == "approved"

        response = await test_client.post(f"/api/refunds/{refund_id}/process", headers=headers_for(owner))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "completed"
        assert len(gateway_calls.requests) == 1

        response = await test_client.get(
            f"/api/bookings/{booking['id']}/refunds/summary", headers=headers_for(guest)
        )
        summary = response.json()["data"]
        assert summary["total_refunded"] == 345000
        assert summary["refund_status"] == "full"

        response = await test_client.get(f"/api/refunds/{refund_id}/history", headers=headers_for(guest))
        assert {h["to_status"] for h in response.json()["data"]} == {
            "requested", "approved", "processing", "completed"
        }

    @pytest.mark.asyncio
    async def test_webhook_secret(self, test_client):
        event = {"gateway_refund_id": "5001", "status": "completed"}

        response = await test_client.post("/api/webhooks/refunds", json=event)
        assert response.status_code == 401

        response = await test_client.post(
            "/api/webhooks/refunds", json=event, headers={"X-Webhook-Secret": "wrong"}
        )
        assert response.status_code == 401

        response = await test_client.post(
            "/api/webhooks/refunds", json=event, headers={"X-Webhook-Secret": settings.refund_webhook_secret}
        )
        assert response.status_code == 404
