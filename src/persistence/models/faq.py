"""FAQ and FAQ category models."""

from typing import ClassVar

from persistence.models.base import Entity


class FAQCategory(Entity):
    """Grouping for FAQ entries, ordered by display_order."""

    collection_name: ClassVar[str] = "faq_categories"
    topic_prefix: ClassVar[str] = "faq_category"

    created_by: str | None = None
    display_order: int = 0
    label: str = ""
    is_active: bool = True


class FAQ(Entity):
    """A single question/answer pair within a category."""

    collection_name: ClassVar[str] = "faqs"
    topic_prefix: ClassVar[str] = "faq"

    created_by: str | None = None
    category: str | None = None
    display_order: int = 0
    question: str = ""
    answer: str = ""
    is_active: bool = True
