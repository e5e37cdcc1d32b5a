#!/usr/bin/env python3
"""
Initialize database with system templates and sample data for development.
"""

import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Allow running from a source checkout without installing the package
sys.path.append(str(Path(__file__).parent.parent / "server"))

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from upkeep.config import settings
from upkeep.models import Owner, ServiceRecord, Vehicle
from upkeep.models.base import Base
from upkeep.schemas.maintenance import ScheduleCreate
from upkeep.services import template_service
from upkeep.services.schedule_manager import ScheduleManager
from upkeep.utils.clock import utcnow


async def init_database():
    """Create tables and seed with sample data."""
    print("Initializing database...")

    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    # Create tables
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    print("Seeding system templates...")
    async with async_session_maker() as db:
        seeded = await template_service.seed_system_templates(db)

    print("Seeding sample data...")
    now = utcnow()
    async with async_session_maker() as db:
        owner = Owner(
            email="jane.smith@example.com",
            first_name="Jane",
            last_name="Smith",
        )
        db.add(owner)
        await db.flush()

        vehicles = [
            Vehicle(
                owner_id=owner.id,
                vin="1HGBH41JXMN109186",
                make="Honda",
                model="Accord",
                year=2021,
                current_mileage=35000,
            ),
            Vehicle(
                owner_id=owner.id,
                vin="1FTFW1ET5DFC10314",
                make="Ford",
                model="F-150",
                year=2020,
                current_mileage=52000,
            ),
            Vehicle(
                owner_id=owner.id,
                make="Kubota",
                model="L2501",
                year=2019,
                current_mileage=0,
                current_engine_hours=740.0,
            ),
        ]
        for vehicle in vehicles:
            db.add(vehicle)
        await db.flush()

        record = ServiceRecord(
            vehicle_id=vehicles[0].id,
            service_date=now - timedelta(days=170),
            mileage=26000,
            service_type="oil_change",
            service_center="Main Street Auto",
        )
        db.add(record)
        await db.commit()

        templates = {t.name: t for t in await template_service.list_system_templates(db)}
        manager = ScheduleManager(db)

        # Oil change approaching by both time and distance
        await manager.create(
            owner.id,
            ScheduleCreate(
                vehicle_id=vehicles[0].id,
                template_id=templates["Oil Change"].id,
                last_completed_date=record.service_date,
                last_completed_mileage=record.mileage,
            ),
        )
        await manager.create(
            owner.id,
            ScheduleCreate(
                vehicle_id=vehicles[1].id,
                template_id=templates["Annual Safety Inspection"].id,
                last_completed_date=now - timedelta(days=400),
            ),
        )
        await manager.create(
            owner.id,
            ScheduleCreate(
                vehicle_id=vehicles[2].id,
                template_id=templates["Oil Change - Heavy Equipment"].id,
                last_completed_date=now - timedelta(days=60),
                last_completed_hours=500.0,
            ),
        )

    print("Database initialized successfully!")
    print(f"Seeded {seeded} system templates")
    print(f"Created 1 owner with {len(vehicles)} vehicles and 3 schedules")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_database())
