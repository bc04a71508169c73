from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import UNKNOWN_USER_LABEL
from app.models.profile import Profile
from app.redis.manager import redis_manager
from app.schemas.profile import ProfileResponse

logger = logging.getLogger(__name__)


class ProfileService:

  @staticmethod
  async def get_profile(user_id: str, db: AsyncSession) -> Optional[ProfileResponse]:
    """
    Публичный профиль по ID
    Сначала Redis, потом БД
    """

    cached = await redis_manager.get_cached_user_profile(user_id)
    if cached:
      return ProfileResponse.model_validate(cached)

    profile = await db.get(Profile, user_id)
    if profile is None:
      return None

    data = ProfileResponse.model_validate(profile)
    await redis_manager.cache_user_profile(user_id, data.model_dump())
    return data


  @staticmethod
  async def get_display_name(user_id: str, db: AsyncSession) -> str:
    """Имя для подписи сообщения, заглушка если профиля нет"""

    profile = await ProfileService.get_profile(user_id, db)
    if profile is None or not profile.full_name:
      return UNKNOWN_USER_LABEL
    return profile.full_name


  @staticmethod
  async def search_profiles(
    query: str,
    exclude_user_id: str,
    db: AsyncSession,
    limit: int = 20,
  ) -> list[Profile]:
    """
    Поиск собеседника по имени (для новой переписки)
    Пустой запрос - просто первые профили
    """

    stmt = select(Profile).where(Profile.id != exclude_user_id)

    query = (query or "").strip()
    if query:
      stmt = stmt.where(Profile.full_name.ilike(f"%{query}%"))

    stmt = stmt.order_by(Profile.full_name).limit(limit)

    result = await db.execute(stmt)
    return list(result.scalars().all())
