"""
Activity models.

Activities belong to an instructor and carry free-form tags stored as child
rows so they can be matched with "any of" filters on every database.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ctpga_manager.auth.models import generate_id
from ctpga_manager.database import Base


class Activity(Base):
    """Teaching activity owned by an instructor."""
    __tablename__ = "activities"

    id = Column(String(32), primary_key=True, default=generate_id)
    title = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    instructor_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    start_date = Column(DateTime, default=datetime.utcnow)
    deadline = Column(DateTime, nullable=True)
    priority = Column(String, nullable=False, default="media")
    category = Column(String, nullable=False, default="clase")
    location = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    progress = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    instructor = relationship("User", lazy="selectin")
    tags = relationship(
        "ActivityTag",
        back_populates="activity",
        cascade="all, delete-orphan",
        order_by="ActivityTag.id",
        lazy="selectin",
    )

    @property
    def tag_names(self):
        return [tag.name for tag in self.tags]


class ActivityTag(Base):
    """Single tag attached to an activity."""
    __tablename__ = "activity_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    activity_id = Column(String(32), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)

    activity = relationship("Activity", back_populates="tags")
