"""
Feedback models.

Feedback is left by any authenticated user, either about an activity or
about the system as a whole, and answered by an administrator.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ctpga_manager.auth.models import generate_id
from ctpga_manager.database import Base

ACTIVITY_TARGET = "activity"
SYSTEM_TARGET = "system"


class Feedback(Base):
    """Comment, rating and administrator response."""
    __tablename__ = "feedback"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    target_type = Column(String, nullable=False, index=True)
    target_id = Column(String(32), ForeignKey("activities.id", ondelete="SET NULL"), nullable=True)
    rating = Column(Integer, nullable=True)
    comment = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    response_text = Column(Text, nullable=True)
    responded_by = Column(String(32), ForeignKey("users.id"), nullable=True)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
    target = relationship("Activity", lazy="selectin")
