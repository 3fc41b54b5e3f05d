"""
Organisation settings endpoints — admin-configurable thresholds.

Singleton pattern: only one row in organization_settings.  GET retrieves
it, PUT updates it.  If no row exists, one is created with defaults.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import get_db, require_admin
from timeclock.models.organization_settings import OrganizationSettings
from timeclock.models.user import User
from timeclock.schemas.settings import OrganizationSettingsRead, OrganizationSettingsUpdate
from timeclock.services.policy import get_or_create_org_settings

router = APIRouter(tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("/settings", response_model=OrganizationSettingsRead)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> OrganizationSettings:
    """Get current organisation thresholds."""
    return await get_or_create_org_settings(db)


@router.put("/settings", response_model=OrganizationSettingsRead)
async def update_settings(
    body: OrganizationSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> OrganizationSettings:
    """Update reminder windows, thresholds, quiet hours or timezone."""
    org = await get_or_create_org_settings(db)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(org, field, value)

    await db.commit()
    await db.refresh(org)
    logger.info("Organization settings updated: %s", changes)
    return org
