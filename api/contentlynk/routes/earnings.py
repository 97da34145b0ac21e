"""Earnings ledger (read-only) and the earnings estimator."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.config import settings
from contentlynk.db.database import get_db
from contentlynk.models.ledger import EarningsRecord
from contentlynk.models.post import Post
from contentlynk.models.user import User
from contentlynk.schemas.ledger import (
    EarningsEntry, CreatorEarningsResponse, PostEarningsResponse,
    EstimateRequest, EstimateResponse,
)
from contentlynk.services.earnings_service import compute_earnings
from contentlynk.services.quality_service import CommentBuckets

router = APIRouter()


async def _total(db: AsyncSession, *criteria) -> float:
    result = await db.execute(
        select(func.coalesce(func.sum(EarningsRecord.amount), 0.0)).where(*criteria)
    )
    return round(float(result.scalar() or 0.0), 4)


@router.get('/creators/{creator_id}', response_model=CreatorEarningsResponse)
async def get_creator_earnings(
    creator_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Earnings history for a creator, newest first, plus the all-time total."""
    creator = await db.get(User, creator_id)
    if not creator:
        raise HTTPException(status_code=404, detail='Creator not found')

    result = await db.execute(
        select(EarningsRecord)
        .where(EarningsRecord.creator_id == creator_id)
        .order_by(desc(EarningsRecord.computed_at), desc(EarningsRecord.id))
        .limit(limit)
        .offset(offset)
    )
    records = result.scalars().all()

    return CreatorEarningsResponse(
        creator_id=creator_id,
        total_earned=await _total(db, EarningsRecord.creator_id == creator_id),
        records=[EarningsEntry.model_validate(r) for r in records],
    )


@router.get('/posts/{post_id}', response_model=PostEarningsResponse)
async def get_post_earnings(
    post_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Earnings history for one post."""
    post = await db.get(Post, post_id)
    if not post:
        raise HTTPException(status_code=404, detail='Post not found')

    result = await db.execute(
        select(EarningsRecord)
        .where(EarningsRecord.post_id == post_id)
        .order_by(desc(EarningsRecord.computed_at), desc(EarningsRecord.id))
        .limit(limit)
        .offset(offset)
    )
    records = result.scalars().all()

    return PostEarningsResponse(
        post_id=post_id,
        total_earned=await _total(db, EarningsRecord.post_id == post_id),
        records=[EarningsEntry.model_validate(r) for r in records],
    )


@router.post('/estimate', response_model=EstimateResponse)
async def estimate_earnings(data: EstimateRequest):
    """Illustrative calculator for prospective creators.

    Runs the exact formula and tables the payout engine uses.
    """
    breakdown = compute_earnings(
        base_rate=settings.earnings_base_rate,
        likes=data.likes,
        comments=CommentBuckets(
            short=data.comments.short,
            medium=data.comments.medium,
            long=data.comments.long,
        ),
        shares=data.shares,
        content_kind=data.content_kind,
        measurement=data.measurement,
        rate=data.completion_rate,
        tier=data.tier,
        has_bonus_pass=data.has_bonus_pass,
    )
    return EstimateResponse(
        quality_score=breakdown.quality_score,
        base_earnings=round(breakdown.quality_score * breakdown.base_rate, 4),
        content_multiplier=breakdown.content_multiplier,
        completion_multiplier=breakdown.completion_multiplier,
        tier_multiplier=round(breakdown.tier_multiplier, 4),
        bonus_multiplier=breakdown.bonus_multiplier,
        total_usd=breakdown.amount,
        total_tokens=round(breakdown.amount / settings.token_price_usd, 4),
        mode=breakdown.mode.value,
    )
