"""API routes for category preferences."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend import repository
from backend.api.schemas import PreferencesPayload
from backend.database import get_session
from backend.srs.preferences import UserPreferences

router = APIRouter(prefix="/api/preferences", tags=["preferences"])


def _to_payload(preferences: UserPreferences) -> PreferencesPayload:
    return PreferencesPayload(
        preferred_categories=[c.value for c in preferences.preferred_categories],
        preferred_difficulties={
            c.value: d.value for c, d in preferences.preferred_difficulties.items()
        },
    )


@router.get("", response_model=PreferencesPayload)
async def get_preferences(db: AsyncSession = Depends(get_session)) -> PreferencesPayload:
    return _to_payload(await repository.get_preferences(db))


@router.put("", response_model=PreferencesPayload)
async def put_preferences(
    payload: PreferencesPayload,
    db: AsyncSession = Depends(get_session),
) -> PreferencesPayload:
    """Replace the category priorities. Unknown categories are dropped."""
    preferences = UserPreferences.from_raw(
        payload.preferred_categories, payload.preferred_difficulties
    )
    await repository.save_preferences(db, preferences)
    await db.commit()
    return _to_payload(preferences)
