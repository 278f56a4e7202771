#!/usr/bin/env python3
"""Setup script for the Vilo API: migrate the database and seed a demo property."""

import argparse
import asyncio
import logging
from datetime import timedelta
from pathlib import Path
from uuid import UUID

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from vilo.core.clock import today
from vilo.core.database import async_session_factory, close_db, init_db
from vilo.models import (
    AddOn,
    AddOnPricingType,
    CancellationPolicy,
    Company,
    DiscountType,
    PricingMode,
    Promotion,
    Property,
    Room,
    SeasonalRate,
)

DB_DIR = Path(__file__).parent.parent / "server" / "db"

# Owner used by the seeded property; mint a token with this `sub` to manage it
DEMO_OWNER_ID = UUID("00000000-0000-4000-8000-000000000001")

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Upgrade the database to the latest Alembic revision."""
    alembic_cfg = Config(str(DB_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(DB_DIR / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Create a company with one property, two rooms, a summer rate, a coupon and an add-on."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing = await db.execute(select(func.count()).select_from(Property))
        if existing.scalar_one() > 0:
            logger.info("Sample data already exists, skipping...")
            return

        try:
            company = Company(
                owner_id=DEMO_OWNER_ID,
                name="Vilo Demo Hospitality",
                vat_percentage=15.0,
                default_currency="ZAR",
                contact_email="owner@vilo.example",
            )
            db.add(company)
            await db.flush()

            prop = Property(
                company_id=company.id,
                owner_id=DEMO_OWNER_ID,
                name="Seaside Guesthouse",
                slug="seaside-guesthouse",
                address="12 Beach Road",
                city="Cape Town",
                country="South Africa",
                email="stay@seaside.example",
                currency="ZAR",
                cancellation_policy=CancellationPolicy.MODERATE.value,
                is_listed_publicly=True,
            )
            db.add(prop)
            await db.flush()

            double = Room(
                property_id=prop.id,
                name="Ocean View Double",
                room_code="OVD",
                pricing_mode=PricingMode.PER_UNIT.value,
                base_price_per_night=150000,
                additional_person_rate=25000,
                child_price_per_night=20000,
                max_guests=3,
                total_units=2,
            )
            dorm = Room(
                property_id=prop.id,
                name="Backpacker Bunk",
                room_code="BUNK",
                pricing_mode=PricingMode.PER_PERSON.value,
                base_price_per_night=35000,
                max_guests=6,
                total_units=1,
            )
            db.add_all([double, dorm])
            await db.flush()

            start = today() + timedelta(days=60)
            db.add(SeasonalRate(
                room_id=double.id,
                name="Summer Peak",
                start_date=start,
                end_date=start + timedelta(days=30),
                price_per_night=195000,
                priority=10,
            ))
            db.add(Promotion(
                property_id=prop.id,
                code="WELCOME10",
                name="Welcome discount",
                discount_type=DiscountType.PERCENTAGE.value,
                discount_value=10,
                max_uses=100,
            ))
            db.add(AddOn(
                property_id=prop.id,
                name="Breakfast",
                type="service",
                price=12000,
                pricing_type=AddOnPricingType.PER_GUEST_PER_NIGHT.value,
                max_quantity=1,
            ))
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error("Failed to create sample data", exc_info=True)
            raise

    logger.info(
        "Sample data created",
        extra={"property_id": str(prop.id), "owner_id": str(DEMO_OWNER_ID)},
    )


async def seed(create_all: bool) -> None:
    try:
        if create_all:
            await init_db()
            logger.info("Tables created from model metadata")
        await create_sample_data()
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--create-all",
        action="store_true",
        help="create tables from the models instead of running Alembic (local development)",
    )
    args = parser.parse_args()

    logger.info("Starting Vilo API setup...")
    if not args.create_all:
        run_migrations()
    asyncio.run(seed(args.create_all))

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: uvicorn vilo.main:app --reload")


if __name__ == "__main__":
    main()
