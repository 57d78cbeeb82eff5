"""Notification model for in-app user notifications."""

from typing import ClassVar

from persistence.models.base import Entity


class Notification(Entity):
    collection_name: ClassVar[str] = "notifications"
    topic_prefix: ClassVar[str] = "notification"

    user_id: str | None = None
    title: str = ""
    body: str = ""
    is_read: bool = False
    is_active: bool = True
