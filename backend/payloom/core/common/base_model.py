"""
Base model with common fields
"""

import uuid
from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func
from payloom.infrastructure.database import Base


def generate_id() -> str:
    return str(uuid.uuid4())


class BaseModel(Base):
    """
    Base model with common fields

    All models inherit from this base class and get:
    - id: opaque string primary key (UUID4 text unless the caller supplies one)
    - created_at: Timezone-aware timestamp
    - updated_at: Timezone-aware timestamp (nullable)
    """
    __abstract__ = True

    id = Column(String(64), primary_key=True, default=generate_id, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
