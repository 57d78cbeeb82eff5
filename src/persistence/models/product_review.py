"""Product review model."""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from persistence.models.base import Entity


class ReviewerAvatarURLs(BaseModel):
    """Avatar image URLs keyed by pixel size."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    size24: str = ""
    size48: str = ""
    size96: str = ""


class ProductReview(Entity):
    """A customer review of a product.

    Attributes:
        product_id: Reviewed product
        status: Moderation status ("approved", "hold", "spam", ...)
        rating: Star rating, 0 to 5
        verified: Whether the reviewer bought the product
    """

    collection_name: ClassVar[str] = "product_reviews"
    topic_prefix: ClassVar[str] = "product_review"

    created_by: str | None = None
    product_id: str | None = Field(default=None, alias="productID")
    status: str = "approved"
    reviewer: str = ""
    reviewer_email: str = ""
    review: str = ""
    rating: int = Field(default=0, ge=0, le=5)
    verified: bool = False
    reviewer_avatar_urls: ReviewerAvatarURLs = Field(
        default_factory=ReviewerAvatarURLs,
        alias="reviewerAvatarURLs",
    )
