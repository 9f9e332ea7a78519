"""Product model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from outlight.database import Base


class Product(Base):
    """Product whose image is used as the reference asset for a run."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    image_url = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
