"""Maintenance template management."""

import logging
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from upkeep.exceptions import NotFoundError
from upkeep.models.maintenance_schedule import CombinationPolicy, MaintenanceSchedule
from upkeep.models.maintenance_template import MaintenanceTemplate
from upkeep.schemas.maintenance import TemplateCreate, TemplateUpdate

logger = logging.getLogger(__name__)

ANY = CombinationPolicy.ANY
ALL = CombinationPolicy.ALL

# (name, category, description, months, kilometers, hours, policy)
SYSTEM_TEMPLATES = [
    ("Oil Change", "Engine", "Regular oil and filter change", 6, 10000, None, ANY),
    ("Oil Filter Replacement", "Engine", "Replace engine oil filter", 6, 10000, None, ANY),
    ("Air Filter Replacement", "Engine", "Replace engine air filter", 12, 20000, None, ANY),
    ("Spark Plugs Replacement", "Engine", "Replace spark plugs", 24, 50000, None, ANY),
    ("Timing Belt Replacement", "Engine", "Replace timing belt", 60, 100000, None, ANY),
    ("Tire Rotation", "Tires", "Rotate tires for even wear", 6, 10000, None, ANY),
    ("Tire Replacement", "Tires", "Replace worn tires", 48, 60000, None, ANY),
    ("Wheel Alignment", "Tires", "Check and adjust wheel alignment", 12, 20000, None, ANY),
    ("Tire Pressure Check", "Tires", "Check and adjust tire pressure", 1, 2000, None, ANY),
    ("Brake Pad Inspection", "Brakes", "Inspect brake pads and rotors", 12, 20000, None, ANY),
    ("Brake Fluid Replacement", "Brakes", "Flush and replace brake fluid", 24, 40000, None, ANY),
    ("Coolant Flush", "Fluids", "Flush and replace engine coolant", 24, 40000, None, ANY),
    ("Transmission Fluid Change", "Fluids", "Change transmission fluid", 48, 80000, None, ANY),
    ("Power Steering Fluid", "Fluids", "Check and replace power steering fluid", 24, 40000, None, ANY),
    ("Annual Safety Inspection", "Inspection", "Comprehensive vehicle safety inspection", 12, None, None, ALL),
    ("Emission Test", "Inspection", "Emission test and certification", 24, None, None, ALL),
    ("Battery Check", "Inspection", "Test battery and charging system", 12, None, None, ALL),
    ("Oil Change - Heavy Equipment", "Equipment", "Oil change for heavy equipment based on engine hours", None, None, 250.0, ALL),
    ("Hydraulic Fluid Change", "Equipment", "Change hydraulic fluid for equipment", None, None, 500.0, ALL),
    ("Air Filter - Equipment", "Equipment", "Replace air filter on heavy equipment", None, None, 100.0, ALL),
]


def _visible_to(user_id: int):
    return or_(MaintenanceTemplate.is_system_template.is_(True), MaintenanceTemplate.owner_id == user_id)


# ============================================================================
# Queries
# ============================================================================


async def list_templates(db: AsyncSession, user_id: int) -> List[MaintenanceTemplate]:
    """System templates plus the user's own, ordered by category then name."""
    stmt = (
        select(MaintenanceTemplate)
        .where(_visible_to(user_id))
        .order_by(MaintenanceTemplate.category, MaintenanceTemplate.name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_system_templates(db: AsyncSession) -> List[MaintenanceTemplate]:
    stmt = (
        select(MaintenanceTemplate)
        .where(MaintenanceTemplate.is_system_template.is_(True))
        .order_by(MaintenanceTemplate.category, MaintenanceTemplate.name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_templates_by_category(
    db: AsyncSession, category: str, user_id: int
) -> List[MaintenanceTemplate]:
    stmt = (
        select(MaintenanceTemplate)
        .where(MaintenanceTemplate.category == category, _visible_to(user_id))
        .order_by(MaintenanceTemplate.name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_template(
    db: AsyncSession, template_id: int, user_id: Optional[int] = None
) -> Optional[MaintenanceTemplate]:
    """
    Fetch a template by id.

    Args:
        db: Database session
        template_id: Template to fetch
        user_id: When given, only system templates and this user's templates are visible

    Returns:
        The template, or None if it does not exist or is not visible
    """
    stmt = select(MaintenanceTemplate).where(MaintenanceTemplate.id == template_id)
    if user_id is not None:
        stmt = stmt.where(_visible_to(user_id))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_categories(db: AsyncSession) -> List[str]:
    """Distinct categories across system templates."""
    stmt = (
        select(MaintenanceTemplate.category)
        .where(MaintenanceTemplate.is_system_template.is_(True))
        .distinct()
        .order_by(MaintenanceTemplate.category)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ============================================================================
# Custom templates
# ============================================================================


async def _get_custom_template(db: AsyncSession, template_id: int, user_id: int) -> MaintenanceTemplate:
    stmt = select(MaintenanceTemplate).where(
        MaintenanceTemplate.id == template_id,
        MaintenanceTemplate.owner_id == user_id,
        MaintenanceTemplate.is_system_template.is_(False),
    )
    result = await db.execute(stmt)
    template = result.scalar_one_or_none()
    if template is None:
        # System templates are read-only and look the same as missing ones
        raise NotFoundError("Template not found")
    return template


async def create_custom_template(
    db: AsyncSession, user_id: int, payload: TemplateCreate
) -> MaintenanceTemplate:
    template = MaintenanceTemplate(
        owner_id=user_id,
        is_system_template=False,
        **payload.model_dump(),
    )
    db.add(template)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Created custom template {template.id} for user {user_id}")
    return template


async def update_custom_template(
    db: AsyncSession, template_id: int, user_id: int, payload: TemplateUpdate
) -> MaintenanceTemplate:
    template = await _get_custom_template(db, template_id, user_id)

    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(template, key, value)

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return template


async def delete_custom_template(db: AsyncSession, template_id: int, user_id: int) -> None:
    """Delete a custom template; schedules created from it keep their copied values."""
    template = await _get_custom_template(db, template_id, user_id)

    try:
        await db.execute(
            update(MaintenanceSchedule)
            .where(MaintenanceSchedule.template_id == template_id)
            .values(template_id=None)
        )
        await db.delete(template)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Deleted custom template {template_id} for user {user_id}")


# ============================================================================
# Seeding
# ============================================================================


async def seed_system_templates(db: AsyncSession) -> int:
    """Insert any built-in templates that are missing. Returns the number inserted."""
    result = await db.execute(
        select(MaintenanceTemplate.name).where(MaintenanceTemplate.is_system_template.is_(True))
    )
    existing = set(result.scalars().all())

    created = 0
    for name, category, description, months, kilometers, hours, policy in SYSTEM_TEMPLATES:
        if name in existing:
            continue
        db.add(
            MaintenanceTemplate(
                name=name,
                category=category,
                description=description,
                is_system_template=True,
                default_interval_months=months,
                default_interval_kilometers=kilometers,
                default_interval_hours=hours,
                combination_policy=policy,
            )
        )
        created += 1

    if created:
        await db.commit()
        logger.info(f"Seeded {created} system maintenance templates")

    return created
