"""
Post endpoints:
  POST   /posts                 — publish a post (optionally quoting another)
  GET    /posts/{id}            — fetch a single hydrated post
  POST   /posts/{id}/repost     — repost someone else's post
  POST   /posts/{id}/like       — toggle like
  DELETE /posts/{id}?user_id=   — author-only delete
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bydbio import aggregator, social
from bydbio.database import get_db, get_session_factory
from bydbio.models import Post
from bydbio.schemas import (
    LikeRequest,
    LikeResponse,
    PostCreate,
    PostView,
    RepostRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _hydrate(session_factory: async_sessionmaker, post: Post, viewer_id: Optional[str]) -> PostView:
    views = await aggregator.populate_posts(session_factory, [post], viewer_id)
    if not views:
        raise HTTPException(status_code=404, detail="Post not found")
    return views[0]


@router.post("/", response_model=PostView, status_code=status.HTTP_201_CREATED)
async def create_post(
    body: PostCreate,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    with tracer.start_as_current_span("create_post") as span:
        post = await social.create_post(
            db,
            author_id=body.author_id,
            content=body.content,
            image_url=body.image_url,
            privacy=body.privacy,
            category=body.category,
            quoted_post_id=body.quoted_post_id,
        )
        span.set_attribute("post.id", post.id)
        # Hydration reads through separate sessions, so the post must be visible.
        await db.commit()
        return await _hydrate(session_factory, post, body.author_id)


@router.get("/{post_id}", response_model=PostView)
async def get_post(
    post_id: str,
    viewer_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    post = await db.get(Post, post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    if post.privacy == "me" and post.author_id != viewer_id:
        raise HTTPException(status_code=404, detail="Post not found")
    return await _hydrate(session_factory, post, viewer_id)


@router.post("/{post_id}/repost", response_model=PostView, status_code=status.HTTP_201_CREATED)
async def repost_post(
    post_id: str,
    body: RepostRequest,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    with tracer.start_as_current_span("repost_post"):
        repost = await social.repost_post(db, post_id, body.user_id)
        await db.commit()
        return await _hydrate(session_factory, repost, body.user_id)


@router.post("/{post_id}/like", response_model=LikeResponse)
async def toggle_like(post_id: str, body: LikeRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("toggle_like"):
        liked = await social.toggle_like(db, post_id, body.user_id)
        return LikeResponse(post_id=post_id, liked=liked)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: str,
    user_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("delete_post"):
        await social.delete_post(db, post_id, user_id)
