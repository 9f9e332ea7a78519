"""Tests for reference asset resolution."""

import pytest

from outlight.models.product import Product
from outlight.services.errors import PreconditionError, ReferenceNotFound
from outlight.services.reference import resolve_reference_url


@pytest.fixture
def product(test_db):
    item = Product(name="Desk Lamp", slug="desk-lamp", image_url="https://cdn.test/lamp.png")
    test_db.add(item)
    test_db.commit()
    return item


def test_custom_url_wins(test_db, product):
    """Test that a direct URL overrides the product image."""
    url = resolve_reference_url(test_db, product.id, "  https://elsewhere.test/x.png ")

    assert url == "https://elsewhere.test/x.png"


def test_product_lookup(test_db, product):
    """Test resolution through the product store."""
    assert resolve_reference_url(test_db, product.id, None) == "https://cdn.test/lamp.png"
    assert resolve_reference_url(test_db, product.id, "   ") == "https://cdn.test/lamp.png"


def test_unknown_product(test_db):
    """Test that a missing product is a precondition failure."""
    with pytest.raises(ReferenceNotFound):
        resolve_reference_url(test_db, "does-not-exist", None)


def test_product_without_image(test_db):
    """Test that an empty image_url is rejected."""
    item = Product(name="Blank", slug="blank", image_url="")
    test_db.add(item)
    test_db.commit()

    with pytest.raises(PreconditionError, match="No image_url"):
        resolve_reference_url(test_db, item.id, None)


def test_no_reference_given(test_db):
    """Test that text-only batches resolve to no reference."""
    assert resolve_reference_url(test_db, None, None) is None
