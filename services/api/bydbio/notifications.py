"""
Activity notifications: stored per recipient and published to Kafka for
push delivery.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bydbio import queries
from bydbio.aggregator import resolve_authors
from bydbio.clients.kafka_producer import publish_notification
from bydbio.config import settings
from bydbio.models import Notification, User
from bydbio.schemas import NotificationView

logger = logging.getLogger(__name__)

# notification type → key in users.notification_settings
SETTING_FOR_TYPE = {
    "new_follower": "new_followers",
    "new_like": "new_likes",
    "event_rsvp": "event_rsvps",
    "new_appointment": "appointments",
}


def _wants(recipient: User, notification_type: str) -> bool:
    key = SETTING_FOR_TYPE.get(notification_type)
    if key is None:
        return True
    # Missing keys mean the notification is enabled.
    return (recipient.notification_settings or {}).get(key, True) is not False


async def create_notification(
    session: AsyncSession,
    user_id: str,
    actor_id: Optional[str],
    notification_type: str,
    entity_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_title: Optional[str] = None,
) -> Optional[Notification]:
    """
    Store a notification for `user_id` and publish it.

    Returns None without writing when the actor is the recipient, when the
    recipient does not exist or when they turned this type off.
    """
    if actor_id and actor_id == user_id:
        return None

    recipient = await session.get(User, user_id)
    if recipient is None:
        logger.warning("Notification %s for unknown user %s dropped", notification_type, user_id)
        return None
    if not _wants(recipient, notification_type):
        logger.debug("User %s has %s notifications turned off", user_id, notification_type)
        return None

    notification = Notification(
        user_id=user_id,
        actor_id=actor_id,
        type=notification_type,
        entity_id=entity_id,
        entity_type=entity_type,
        entity_title=entity_title,
    )
    session.add(notification)
    await session.flush()

    await publish_notification(
        {
            "id": notification.id,
            "user_id": user_id,
            "actor_id": actor_id,
            "type": notification_type,
            "entity_id": entity_id,
            "entity_type": entity_type,
            "entity_title": entity_title,
            "created_at": notification.created_at.isoformat(),
        }
    )
    return notification


async def list_notifications(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
    limit: Optional[int] = None,
) -> list[NotificationView]:
    """Newest notifications first, with actor summaries resolved in batches."""
    async with session_factory() as session:
        rows = await queries.fetch_recent_notifications(
            session, user_id, limit or settings.notifications_page_size
        )
    actors = await resolve_authors(session_factory, [n.actor_id for n in rows])

    return [
        NotificationView(
            id=n.id,
            type=n.type,
            actor=actors.get(n.actor_id),
            entity_id=n.entity_id,
            entity_type=n.entity_type,
            entity_title=n.entity_title,
            read=n.read,
            created_at=n.created_at.isoformat(),
        )
        for n in rows
    ]


async def mark_notifications_read(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    return result.rowcount
