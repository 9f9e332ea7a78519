"""Reference asset resolution."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from outlight.models.product import Product
from outlight.services.errors import ReferenceNotFound

logger = logging.getLogger(__name__)


def resolve_reference_url(
    db: Session,
    product_id: Optional[str],
    custom_url: Optional[str],
) -> Optional[str]:
    """
    Resolve the reference image URL for a batch.

    A non-blank custom URL wins over the product lookup.

    Args:
        db: Database session
        product_id: Product whose image_url should be used
        custom_url: Direct URL supplied by the caller

    Returns:
        The URL, or None when neither source was given (text-only providers)

    Raises:
        ReferenceNotFound: Unknown product, or product without an image_url
    """
    trimmed = (custom_url or "").strip()
    if trimmed:
        return trimmed
    if not product_id:
        return None

    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise ReferenceNotFound(f"Product {product_id} not found")
    if not (product.image_url or "").strip():
        raise ReferenceNotFound("No image_url found for product")

    logger.info(f"Resolved reference image for product {product.slug}")
    return product.image_url.strip()
