"""
Home feed endpoint — GET /feed?user_id=<id>

  Stage 1 │ Author set
  ────────┼──────────────────────────────────────────────────────────────
          │  The user plus everyone they follow, split into chunks of 30
          │  (the IN-query ceiling).

  Stage 2 │ Candidate fetch (concurrent)
  ────────┼──────────────────────────────────────────────────────────────
          │  Per chunk: newest 50 posts, newest 20 active records of every
          │  other content kind.

  Stage 3 │ Visibility & hydration
  ────────┼──────────────────────────────────────────────────────────────
          │  Drop other users' private posts. Attach live originals to
          │  reposts, author summaries, and the viewer's like state.

  Stage 4 │ Merge
  ────────┼──────────────────────────────────────────────────────────────
          │  Sort everything by date, newest first, keep the top 50.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import async_sessionmaker

from bydbio import aggregator
from bydbio.database import get_session_factory
from bydbio.schemas import FeedResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=FeedResponse)
async def get_feed(
    user_id: str = Query(..., description="Requesting user ID"),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    items = await aggregator.get_following_feed(session_factory, user_id)
    logger.info("Feed for %s: %d items", user_id, len(items))
    return FeedResponse(user_id=user_id, items=items)
