"""SQLAlchemy ORM models."""

from outlight.models.product import Product

__all__ = [
    "Product",
]
