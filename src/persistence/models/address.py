"""Address model for customer and store locations."""

from typing import ClassVar

from persistence.models.base import Entity


class Address(Entity):
    """A postal address with coordinates.

    Also embedded by value in orders as the delivery address; the embedded
    copy keeps its own id so the order does not change when the saved
    address is edited later.
    """

    collection_name: ClassVar[str] = "addresses"
    topic_prefix: ClassVar[str] = "address"

    created_by: str | None = None
    name: str = ""
    first_name: str = ""
    last_name: str = ""
    company_name: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    post_code: str = ""
    address_description: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
