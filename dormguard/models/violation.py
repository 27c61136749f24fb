"""Violation model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from dormguard.database import Base


class Violation(Base):
    """A logged dormitory rule violation."""
    __tablename__ = "violations"
    __table_args__ = (
        Index("idx_created_at", "created_at"),
        Index("idx_created_by", "created_by"),
    )

    id = Column(Integer, primary_key=True)
    dorm = Column(String(20), nullable=False, default="")
    student_name = Column(String(50), nullable=False, default="")
    class_name = Column(String(50), nullable=False, default="")
    period = Column(String(20), nullable=False, default="")
    reason = Column(Text, nullable=False)
    department = Column(String(30), nullable=False, default="")
    inspector = Column(String(100), nullable=False, default="")
    # Bare filename under UPLOAD_DIR, or "" when no photo was attached.
    photo_path = Column(String(500), nullable=False, default="")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.now)
