"""Entity models and the document table backing them."""

from persistence.models.address import Address
from persistence.models.base import Base, DocumentRecord, Entity
from persistence.models.faq import FAQ, FAQCategory
from persistence.models.ids import is_object_id, new_object_id, parse_object_id
from persistence.models.notification import Notification
from persistence.models.order import Order, OrderItem, OrderNote, OrderStatusEnum
from persistence.models.product_review import ProductReview, ReviewerAvatarURLs
from persistence.models.webhook import Webhook

# Topic prefix -> entity type, for wiring repositories by name
ENTITY_TYPES: dict[str, type[Entity]] = {
    entity_type.topic_prefix: entity_type
    for entity_type in (
        Address,
        FAQ,
        FAQCategory,
        Notification,
        Order,
        OrderNote,
        ProductReview,
        Webhook,
    )
}


def get_entity_type(topic_prefix: str) -> type[Entity]:
    """Look up a declared entity type by its topic prefix.

    Raises:
        KeyError: If no entity declares the prefix
    """
    try:
        return ENTITY_TYPES[topic_prefix]
    except KeyError:
        raise KeyError(f"No entity declared with topic prefix {topic_prefix!r}") from None


__all__ = [
    "Address",
    "Base",
    "DocumentRecord",
    "ENTITY_TYPES",
    "Entity",
    "FAQ",
    "FAQCategory",
    "Notification",
    "Order",
    "OrderItem",
    "OrderNote",
    "OrderStatusEnum",
    "ProductReview",
    "ReviewerAvatarURLs",
    "Webhook",
    "get_entity_type",
    "is_object_id",
    "new_object_id",
    "parse_object_id",
]
