import secrets
import time

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.db.database import get_db
from contentlynk.models.engagement import EngagementType
from contentlynk.models.post import Post
from contentlynk.schemas.post import (
    CommentCreate, ViewCreate, EngagementResponse, EarningsOutcome, RevokeResponse,
    ConsumptionCreate, ConsumptionResponse, PostAggregatesResponse,
)
from contentlynk.services.consumption_service import (
    ConsumptionAggregator, ConcurrentSampleUpdate, SampleValues,
)
from contentlynk.services.engagement_service import (
    EngagementService, EngagementOutcome, RevokeOutcome,
)

router = APIRouter()


async def _get_post(db: AsyncSession, post_id: int) -> Post:
    post = await db.get(Post, post_id)
    if not post:
        raise HTTPException(status_code=404, detail='Post not found')
    return post


def _anonymous_session_id() -> str:
    return f'anon-{int(time.time() * 1000)}-{secrets.token_hex(5)}'


def _engagement_response(outcome: EngagementOutcome) -> EngagementResponse:
    earnings = None
    if outcome.earnings is not None:
        earnings = EarningsOutcome(
            success=outcome.earnings.success,
            final_earnings=outcome.earnings.final_earnings,
            mode=outcome.earnings.mode.value if outcome.earnings.mode else None,
            message=outcome.earnings.message,
            replayed=outcome.earnings.replayed,
        )
    return EngagementResponse(
        post_id=outcome.post_id,
        engagement_type=outcome.engagement_type.value,
        credited=outcome.credited,
        count=outcome.count,
        reason_code=outcome.reason_code.value if outcome.reason_code else None,
        message=outcome.message,
        earnings=earnings,
    )


def _revoke_response(outcome: RevokeOutcome) -> RevokeResponse:
    return RevokeResponse(
        post_id=outcome.post_id,
        engagement_type=outcome.engagement_type.value,
        revoked=outcome.revoked,
        count=outcome.count,
    )


async def _engage(
    db: AsyncSession, post_id: int, actor_id: int,
    engagement_type: EngagementType, content_length: int | None = None,
) -> EngagementResponse:
    await _get_post(db, post_id)
    outcome = await EngagementService(db).report_engagement(
        post_id, actor_id, engagement_type, content_length=content_length,
    )
    return _engagement_response(outcome)


async def _revoke(
    db: AsyncSession, post_id: int, actor_id: int, engagement_type: EngagementType,
) -> RevokeResponse:
    await _get_post(db, post_id)
    outcome = await EngagementService(db).revoke_engagement(post_id, actor_id, engagement_type)
    return _revoke_response(outcome)


# ── Likes / shares / comments ───────────────────────────────────────────────

@router.post('/{post_id}/like', response_model=EngagementResponse)
async def like_post(
    post_id: int,
    actor_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Like a post. Always succeeds; credited only if it passes anti-gaming."""
    return await _engage(db, post_id, actor_id, EngagementType.LIKE)


@router.delete('/{post_id}/like', response_model=RevokeResponse)
async def unlike_post(
    post_id: int,
    actor_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Unlike a post. Earnings already issued are kept."""
    return await _revoke(db, post_id, actor_id, EngagementType.LIKE)


@router.post('/{post_id}/share', response_model=EngagementResponse)
async def share_post(
    post_id: int,
    actor_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Share a post."""
    return await _engage(db, post_id, actor_id, EngagementType.SHARE)


@router.delete('/{post_id}/share', response_model=RevokeResponse)
async def unshare_post(
    post_id: int,
    actor_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Unshare a post."""
    return await _revoke(db, post_id, actor_id, EngagementType.SHARE)


@router.post(
    '/{post_id}/comments', response_model=EngagementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def comment_on_post(
    post_id: int,
    comment_data: CommentCreate,
    actor_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Record a comment engagement. Longer comments weigh more in the quality score."""
    return await _engage(
        db, post_id, actor_id, EngagementType.COMMENT,
        content_length=len(comment_data.content.strip()),
    )


@router.delete('/{post_id}/comments', response_model=RevokeResponse)
async def remove_comment(
    post_id: int,
    actor_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Comment removed by its author."""
    return await _revoke(db, post_id, actor_id, EngagementType.COMMENT)


# ── Views & consumption ──────────────────────────────────────────────────────

@router.post('/{post_id}/view', response_model=EngagementResponse)
async def view_post(
    post_id: int,
    view_data: ViewCreate | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Count a view. Views are uncapped and never earn."""
    await _get_post(db, post_id)
    user_id = view_data.user_id if view_data else None
    outcome = await EngagementService(db).report_view(post_id, user_id)
    return _engagement_response(outcome)


@router.post('/{post_id}/consumption', response_model=ConsumptionResponse)
async def track_consumption(
    post_id: int,
    data: ConsumptionCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record scroll / watch / listen progress for a session.

    Repeated reports for the same session refine one record; progress never
    goes backwards. Reuse the returned session_id on later reports.
    """
    await _get_post(db, post_id)
    session_id = data.session_id or _anonymous_session_id()

    aggregator = ConsumptionAggregator(db)
    try:
        result = await aggregator.record(
            post_id,
            session_id,
            SampleValues(
                scroll_depth=data.scroll_depth,
                watch_percentage=data.watch_percentage,
                listen_percentage=data.listen_percentage,
                time_spent=data.time_spent or 0.0,
                completed=data.completed,
            ),
            user_id=data.user_id,
        )
    except ConcurrentSampleUpdate:
        raise HTTPException(
            status_code=409,
            detail='Session is being updated concurrently, retry shortly',
        )

    sample = result.sample
    return ConsumptionResponse(
        consumption_id=sample.id,
        session_id=session_id,
        updated=not result.created,
        scroll_depth=sample.scroll_depth,
        watch_percentage=sample.watch_percentage,
        listen_percentage=sample.listen_percentage,
        time_spent=sample.time_spent,
        completed=sample.completed,
    )


@router.get('/{post_id}/aggregates', response_model=PostAggregatesResponse)
async def get_post_aggregates(
    post_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Current derived metrics for a post."""
    post = await db.get(Post, post_id, populate_existing=True)
    if not post:
        raise HTTPException(status_code=404, detail='Post not found')

    return PostAggregatesResponse(
        post_id=post.id,
        views=post.views_count,
        authenticated_views=post.authenticated_views_count,
        public_views=post.public_views_count,
        likes=post.likes_count,
        comments=post.comments_count,
        shares=post.shares_count,
        average_scroll_depth=post.average_scroll_depth,
        average_watch_percentage=post.average_watch_percentage,
        total_completions=post.total_completions,
        created_at=post.created_at,
    )
