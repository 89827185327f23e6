from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from forum.cache import cache
from forum.database import get_db
from forum.models import Channel, Follow, Message, Topic, User
from forum.schemas import MetricsResponse

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    return MetricsResponse(
        total_users=await _count(db, User),
        total_channels=await _count(db, Channel),
        total_topics=await _count(db, Topic),
        total_messages=await _count(db, Message),
        total_follows=await _count(db, Follow),
        cache_info=cache.stats,
    )
