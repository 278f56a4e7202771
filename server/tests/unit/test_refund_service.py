"""Unit tests for RefundService: eligibility, review workflow and processing."""

import json
from datetime import datetime

import pytest

from vilo.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from vilo.schemas.booking import RecordPaymentRequest
from vilo.schemas.refund import (
    ApproveRefundRequest,
    CreateRefundRequest,
    GatewayRefundEvent,
    ManualCompleteRequest,
    RejectRefundRequest,
)
from vilo.services.booking_service import BookingService
from vilo.services.refund_service import RefundService


@pytest.fixture
def paid_booking(test_session, booking_request, guest, owner):
    """
    Create the default booking (345 000 total) and record the given payments.

    Each payment is (amount, method, reference); references go into
    gateway_reference for Paystack and payment_reference otherwise.
    """

    async def create(*payments):
        bookings = BookingService(test_session)
        booking = await bookings.create_booking(booking_request(), guest)
        for day, (amount, method, reference) in enumerate(payments, start=1):
            await bookings.record_payment(
                booking.id,
                RecordPaymentRequest(
                    amount=amount,
                    payment_method=method,
                    gateway_reference=reference if method == "paystack" else None,
                    payment_reference=reference if method != "paystack" else None,
                    paid_at=datetime(2026, 1, day),
                ),
                owner,
            )
        return await bookings.get_booking_by_id_or_raise(booking.id)

    return create


async def approved_refund(service, booking, guest, owner, amount, reason="Change of plans"):
    refund = await service.create_refund(
        booking.id, CreateRefundRequest(requested_amount=amount, reason=reason), guest
    )
    return await service.approve_refund(refund.id, ApproveRefundRequest(), owner)


class TestEligibility:
    @pytest.mark.asyncio
    async def test_unpaid_booking_is_not_eligible(self, test_session, booking_request, guest):
        booking = await BookingService(test_session).create_booking(booking_request(), guest)
        eligibility = await RefundService(test_session).get_eligibility(booking.id, guest)

        assert eligibility["eligible"] is False
        assert eligibility["available_for_refund"] == 0
        assert eligibility["reason"]

    @pytest.mark.asyncio
    async def test_policy_suggestion(self, test_session, paid_booking, guest):
        """Thirty days out on the moderate policy refunds everything."""
        booking = await paid_booking((345000, "eft", "EFT-1"))
        eligibility = await RefundService(test_session).get_eligibility(booking.id, guest)

        assert eligibility["eligible"] is True
        assert eligibility["available_for_refund"] == 345000
        assert eligibility["suggested_amount"] == 345000
        assert eligibility["cancellation_policy"] == "moderate"
        assert eligibility["days_until_check_in"] == 30


class TestCreateRefund:
    @pytest.mark.asyncio
    async def test_unpaid_booking_is_rejected(self, test_session, booking_request, guest):
        booking = await BookingService(test_session).create_booking(booking_request(), guest)
        with pytest.raises(ValidationError):
            await RefundService(test_session).create_refund(
                booking.id, CreateRefundRequest(requested_amount=1000, reason="Sick"), guest
            )

    @pytest.mark.asyncio
    async def test_amount_cannot_exceed_paid(self, test_session, paid_booking, guest):
        booking = await paid_booking((100000, "eft", "EFT-1"))
        with pytest.raises(ValidationError):
            await RefundService(test_session).create_refund(
                booking.id, CreateRefundRequest(requested_amount=100001, reason="Sick"), guest
            )

    @pytest.mark.asyncio
    async def test_one_active_refund_per_booking(self, test_session, paid_booking, guest):
        booking = await paid_booking((345000, "eft", "EFT-1"))
        service = RefundService(test_session)
        first = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=1000, reason="Sick"), guest
        )
        assert first.status == "requested"
        assert first.suggested_amount == 345000

        with pytest.raises(ConflictError) as exc_info:
            await service.create_refund(
                booking.id, CreateRefundRequest(requested_amount=1000, reason="Again"), guest
            )
        assert exc_info.value.details["active_refund_id"] == str(first.id)

    @pytest.mark.asyncio
    async def test_strangers_cannot_ask(self, test_session, paid_booking, other_user):
        booking = await paid_booking((345000, "eft", "EFT-1"))
        with pytest.raises(ForbiddenError):
            await RefundService(test_session).create_refund(
                booking.id, CreateRefundRequest(requested_amount=1000, reason="Mine"), other_user
            )


class TestReview:
    @pytest.mark.asyncio
    async def test_review_then_approve(self, test_session, paid_booking, guest, owner):
        booking = await paid_booking((345000, "eft", "EFT-1"))
        service = RefundService(test_session)
        refund = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=120000, reason="Early departure"), guest
        )

        reviewing = await service.start_review(refund.id, owner, "Checking with housekeeping")
        assert reviewing.status == "under_review"
        assert reviewing.review_notes == "Checking with housekeeping"

        approved = await service.approve_refund(refund.id, ApproveRefundRequest(), owner)
        assert approved.status == "approved"
        assert approved.approved_amount == 120000
        assert approved.reviewed_at is not None

        history = await service.get_history(refund.id, guest)
        assert {h.to_status for h in history} == {"requested", "under_review", "approved"}

    @pytest.mark.asyncio
    async def test_approved_amount_is_bounded(self, test_session, paid_booking, guest, owner):
        booking = await paid_booking((100000, "eft", "EFT-1"))
        service = RefundService(test_session)
        refund = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=50000, reason="Sick"), guest
        )
        with pytest.raises(ValidationError):
            await service.approve_refund(refund.id, ApproveRefundRequest(approved_amount=100001), owner)

    @pytest.mark.asyncio
    async def test_guest_cannot_approve(self, test_session, paid_booking, guest):
        booking = await paid_booking((100000, "eft", "EFT-1"))
        service = RefundService(test_session)
        refund = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=50000, reason="Sick"), guest
        )
        with pytest.raises(ForbiddenError):
            await service.approve_refund(refund.id, ApproveRefundRequest(), guest)

    @pytest.mark.asyncio
    async def test_reject_frees_the_booking(self, test_session, paid_booking, guest, owner):
        booking = await paid_booking((100000, "eft", "EFT-1"))
        service = RefundService(test_session)
        refund = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=50000, reason="Sick"), guest
        )
        rejected = await service.reject_refund(
            refund.id, RejectRefundRequest(customer_notes="Outside the policy window"), owner
        )
        assert rejected.status == "rejected"
        assert rejected.customer_notes == "Outside the policy window"

        with pytest.raises(ValidationError):
            await service.start_review(refund.id, owner)

        again = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=20000, reason="Partial stay"), guest
        )
        assert again.status == "requested"

    @pytest.mark.asyncio
    async def test_only_requester_can_withdraw(self, test_session, paid_booking, guest, owner):
        booking = await paid_booking((100000, "eft", "EFT-1"))
        service = RefundService(test_session)
        refund = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=50000, reason="Sick"), guest
        )
        with pytest.raises(ForbiddenError):
            await service.withdraw_refund(refund.id, owner)

        withdrawn = await service.withdraw_refund(refund.id, guest, "Feeling better")
        assert withdrawn.status == "withdrawn"


class TestProcessing:
    @pytest.mark.asyncio
    async def test_paystack_refund_completes(
        self, test_session, paid_booking, guest, owner, gateway, gateway_calls
    ):
        booking = await paid_booking((345000, "paystack", "PSK-REF-1"))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 345000)

        processed = await service.process_refund(refund.id, owner)

        assert processed.status == "completed"
        assert processed.refunded_amount == 345000
        assert processed.refund_breakdown[0]["status"] == "completed"
        assert processed.refund_breakdown[0]["gateway_refund_id"] == "5001"

        sent = gateway_calls.requests[0]
        assert sent.headers["Authorization"] == "Bearer sk_test_vilo"
        body = json.loads(sent.content)
        assert body["transaction"] == "PSK-REF-1"
        assert body["amount"] == 345000

        booking = await BookingService(test_session).get_booking_by_id_or_raise(booking.id)
        assert booking.total_refunded == 345000
        assert booking.refund_status == "full"
        assert booking.payment_status == "refunded"

    @pytest.mark.asyncio
    async def test_paypal_refund_uses_capture_id(
        self, test_session, paid_booking, guest, owner, gateway, gateway_calls
    ):
        booking = await paid_booking((345000, "paypal", "CAPTURE-1"))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 100000)

        processed = await service.process_refund(refund.id, owner)

        assert processed.status == "completed"
        token_request, refund_request = gateway_calls.requests
        assert token_request.url.path == "/v1/oauth2/token"
        assert refund_request.url.path == "/v2/payments/captures/CAPTURE-1/refund"
        assert json.loads(refund_request.content)["amount"] == {"value": "1000.00", "currency_code": "ZAR"}

        booking = await BookingService(test_session).get_booking_by_id_or_raise(booking.id)
        assert booking.refund_status == "partial"
        assert booking.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_only_approved_refunds_are_processed(self, test_session, paid_booking, guest, owner, gateway):
        booking = await paid_booking((345000, "eft", "EFT-1"))
        service = RefundService(test_session, gateway=gateway)
        refund = await service.create_refund(
            booking.id, CreateRefundRequest(requested_amount=1000, reason="Sick"), guest
        )
        with pytest.raises(ValidationError):
            await service.process_refund(refund.id, owner)

    @pytest.mark.asyncio
    async def test_mixed_payments_wait_for_manual_and_gateway(
        self, test_session, paid_booking, guest, owner, gateway, gateway_calls
    ):
        """An EFT share waits for the owner; the Paystack share waits for the webhook."""
        gateway_calls.paystack = {"status": True, "data": {"id": 777, "status": "pending"}}
        booking = await paid_booking((145000, "eft", "EFT-1"), (200000, "paystack", "PSK-REF-2"))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 100000)

        processing = await service.process_refund(refund.id, owner)
        assert processing.status == "processing"
        items = {item["method"]: item for item in processing.refund_breakdown}
        assert items["eft"]["status"] == "manual_pending"
        assert items["paystack"]["status"] == "processing"
        assert items["eft"]["amount"] + items["paystack"]["amount"] == 100000

        still_processing = await service.mark_manual_complete(
            refund.id, ManualCompleteRequest(refund_reference="EFT-OUT-9"), owner
        )
        assert still_processing.status == "processing"
        eft_item = next(i for i in still_processing.refund_breakdown if i["method"] == "eft")
        assert eft_item["status"] == "completed"
        assert eft_item["refund_reference"] == "EFT-OUT-9"

        completed = await service.handle_gateway_event(
            GatewayRefundEvent(gateway_refund_id="777", status="completed")
        )
        assert completed.status == "completed"
        assert completed.refunded_amount == 100000

        booking = await BookingService(test_session).get_booking_by_id_or_raise(booking.id)
        assert booking.total_refunded == 100000
        assert booking.refund_status == "partial"

    @pytest.mark.asyncio
    async def test_failed_gateway_refund_can_be_retried(
        self, test_session, paid_booking, guest, owner, gateway, gateway_calls
    ):
        gateway_calls.paystack = {"status": False, "message": "Transaction has been fully reversed"}
        gateway_calls.paystack_status = 400
        booking = await paid_booking((345000, "paystack", "PSK-REF-3"))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 345000)

        failed = await service.process_refund(refund.id, owner)
        assert failed.status == "failed"
        assert failed.auto_process_failed is True
        assert "fully reversed" in failed.failure_reason

        # A failed refund no longer blocks the booking
        eligibility = await service.get_eligibility(booking.id, guest)
        assert eligibility["active_refund_id"] is None

        gateway_calls.paystack = {"status": True, "data": {"id": 9001, "status": "processed"}}
        gateway_calls.paystack_status = 200
        retried = await service.retry_refund(refund.id, owner)
        assert retried.status == "completed"
        assert retried.auto_process_failed is False

        with pytest.raises(ValidationError):
            await service.retry_refund(refund.id, owner)

    @pytest.mark.asyncio
    async def test_pending_gateway_share_survives_a_failed_share(
        self, test_session, paid_booking, guest, owner, gateway, gateway_calls
    ):
        """PayPal refuses its share while Paystack is still confirming the other."""
        gateway_calls.paypal = {"message": "Refund refused"}
        gateway_calls.paypal_status = 422
        gateway_calls.paystack = {"status": True, "data": {"id": 777, "status": "pending"}}
        booking = await paid_booking((145000, "paypal", "CAPTURE-2"), (200000, "paystack", "PSK-REF-4"))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 100000)

        processing = await service.process_refund(refund.id, owner)
        assert processing.status == "processing"
        assert {i["method"]: i["status"] for i in processing.refund_breakdown} == {
            "paypal": "failed",
            "paystack": "processing",
        }

        failed = await service.handle_gateway_event(GatewayRefundEvent(gateway_refund_id="777", status="completed"))
        assert failed.status == "failed"
        assert {i["method"]: i["status"] for i in failed.refund_breakdown} == {
            "paypal": "failed",
            "paystack": "completed",
        }

        gateway_calls.paypal = {"id": "PP-REFUND-2", "status": "COMPLETED"}
        gateway_calls.paypal_status = 201
        retried = await service.retry_refund(refund.id, owner)
        assert retried.status == "completed"
        assert retried.refunded_amount == 100000
        assert [r.url.path for r in gateway_calls.requests].count("/refund") == 1

    @pytest.mark.asyncio
    async def test_late_confirmation_reaches_a_failed_refund(
        self, test_session, paid_booking, guest, owner, gateway, gateway_calls
    ):
        gateway_calls.paypal = {"message": "Refund refused"}
        gateway_calls.paypal_status = 422
        gateway_calls.paystack = {"status": True, "data": {"id": 778, "status": "pending"}}
        booking = await paid_booking((145000, "paypal", "CAPTURE-3"), (200000, "paystack", "PSK-REF-5"))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 100000)
        await service.process_refund(refund.id, owner)

        failed = await service.handle_gateway_event(
            GatewayRefundEvent(gateway_refund_id="778", status="failed", message="Timed out")
        )
        assert failed.status == "failed"
        assert "Timed out" in failed.failure_reason

        # Paystack settles the share after all; the refund keeps its status
        late = await service.handle_gateway_event(GatewayRefundEvent(gateway_refund_id="778", status="completed"))
        assert late.status == "failed"
        paystack_item = next(i for i in late.refund_breakdown if i["method"] == "paystack")
        assert paystack_item["status"] == "completed"
        assert "Timed out" not in late.failure_reason

        gateway_calls.paypal = {"id": "PP-REFUND-3", "status": "COMPLETED"}
        gateway_calls.paypal_status = 201
        retried = await service.retry_refund(refund.id, owner)
        assert retried.status == "completed"
        assert [r.url.path for r in gateway_calls.requests].count("/refund") == 1

    @pytest.mark.asyncio
    async def test_missing_gateway_reference_fails_the_item(
        self, test_session, paid_booking, guest, owner, gateway, gateway_calls
    ):
        booking = await paid_booking((345000, "paystack", None))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 1000)

        failed = await service.process_refund(refund.id, owner)
        assert failed.status == "failed"
        assert "reference" in failed.refund_breakdown[0]["error_message"]
        assert gateway_calls.requests == []

    @pytest.mark.asyncio
    async def test_unknown_gateway_event(self, test_session):
        with pytest.raises(NotFoundError):
            await RefundService(test_session).handle_gateway_event(
                GatewayRefundEvent(gateway_refund_id="does-not-exist", status="completed")
            )


class TestReads:
    @pytest.mark.asyncio
    async def test_summary_and_listing(
        self, test_session, paid_booking, guest, owner, other_user, gateway
    ):
        booking = await paid_booking((345000, "eft", "EFT-1"))
        service = RefundService(test_session, gateway=gateway)
        refund = await approved_refund(service, booking, guest, owner, 45000)
        await service.process_refund(refund.id, owner)
        await service.mark_manual_complete(refund.id, ManualCompleteRequest(refund_reference="EFT-OUT-1"), owner)

        summary = await service.get_summary(booking.id, guest)
        assert summary["total_paid"] == 345000
        assert summary["total_refunded"] == 45000
        assert summary["available_for_refund"] == 300000
        assert summary["refund_status"] == "partial"
        assert summary["active_refunds"] == []
        assert [r.id for r in summary["completed_refunds"]] == [refund.id]

        for user, expected in ((owner, 1), (guest, 1), (other_user, 0)):
            items, total = await service.list_refunds(user)
            assert total == expected

        _, total = await service.list_refunds(owner, status="requested")
        assert total == 0

        with pytest.raises(ForbiddenError):
            await service.get_refund(refund.id, other_user)
