"""Customer (CRM) upkeep driven by bookings and quote requests."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import INACTIVE_BOOKING_STATUSES, Booking
from ..models.customer import Customer, CustomerStatus

logger = logging.getLogger(__name__)


class CustomerService:
    """Service for customer records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_or_create_customer(
        self,
        email: str,
        property_id: UUID,
        company_id: UUID,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        user_id: Optional[UUID] = None,
        source: str = "booking",
    ) -> Customer:
        """
        Return the customer for (email, property), creating it when missing.

        Blank name, phone or user id on an existing record are filled from the
        new details; values already present are kept.
        """
        email = email.strip().lower()
        result = await self.db.execute(
            select(Customer).where(Customer.email == email, Customer.property_id == property_id)
        )
        customer = result.scalar_one_or_none()

        if customer is None:
            customer = Customer(
                email=email,
                property_id=property_id,
                company_id=company_id,
                full_name=full_name,
                phone=phone,
                user_id=user_id,
                source=source,
                status=CustomerStatus.LEAD.value,
            )
            self.db.add(customer)
            await self.db.flush()
            logger.info(
                "Customer created",
                extra={"customer_id": str(customer.id), "property_id": str(property_id), "source": source},
            )
            return customer

        if not customer.full_name and full_name:
            customer.full_name = full_name
        if not customer.phone and phone:
            customer.phone = phone
        if customer.user_id is None and user_id is not None:
            customer.user_id = user_id
        return customer

    async def sync_booking_stats(self, customer_id: UUID) -> Optional[Customer]:
        """Recompute booking count, spend and last booking time for a customer."""
        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            return None

        await self.db.flush()
        result = await self.db.execute(
            select(
                func.count(Booking.id),
                func.coalesce(func.sum(Booking.amount_paid - Booking.total_refunded), 0),
                func.max(Booking.created_at),
            ).where(
                Booking.customer_id == customer_id,
                Booking.booking_status.not_in(INACTIVE_BOOKING_STATUSES),
            )
        )
        count, spent, last_booking_at = result.one()

        customer.total_bookings = count
        customer.total_spent = int(spent or 0)
        customer.last_booking_at = last_booking_at
        if count > 0 and customer.status == CustomerStatus.LEAD.value:
            customer.status = CustomerStatus.ACTIVE.value

        logger.debug(
            "Customer booking stats synced",
            extra={"customer_id": str(customer_id), "total_bookings": count, "total_spent": customer.total_spent},
        )
        return customer
