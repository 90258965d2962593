"""
AuditLog model - Transversal audit trail
"""

from sqlalchemy import Column, String, JSON, Text, Enum as SQLEnum
from payloom.core.common.base_model import BaseModel
from payloom.core.security.models import Role
from payloom.infrastructure.logging_config import trace_id_context


def _current_trace_id():
    return trace_id_context.get()


class AuditLog(BaseModel):
    """
    One row per accepted escrow transition, dispute move and wallet movement,
    written in the same database transaction as the change it describes.

    trace_id ties the row to the request or job run that produced it.
    """

    __tablename__ = "audit_logs"

    actor_user_id = Column(String(64), nullable=True, index=True)  # NULL for SYSTEM
    actor_role = Column(SQLEnum(Role, name="actor_role", create_constraint=True), nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(64), nullable=True, index=True)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    trace_id = Column(String(64), nullable=True, index=True, default=_current_trace_id)
