"""Webhook subscription model."""

from typing import ClassVar

from pydantic import Field

from persistence.models.base import Entity


class Webhook(Entity):
    """An app's subscription to event topics delivered to a URL.

    ``event_topics`` holds topic names such as ``order.created``; it is
    exposed as ``events`` on the wire.
    """

    collection_name: ClassVar[str] = "webhooks"
    topic_prefix: ClassVar[str] = "webhook"

    created_by: str | None = None
    app_id: str = ""
    url: str = ""
    event_topics: list[str] = Field(default_factory=list, alias="events")
    secret: str = ""
    is_active: bool = True
