"""
Authentication models for CTPGA Manager.

This module defines the SQLAlchemy ``User`` model and its password helpers.
"""
import uuid
from datetime import datetime

import bcrypt
from sqlalchemy import Boolean, Column, DateTime, String

from ctpga_manager.database import Base


def generate_id() -> str:
    return uuid.uuid4().hex


def _password_bytes(password: str) -> bytes:
    # bcrypt only uses the first 72 bytes
    return password.encode('utf-8')[:72]


class User(Base):
    """User account with a single role."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="instructor")
    area = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    is_online = Column(Boolean, default=False)
    last_active = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    def verify_password(self, password: str) -> bool:
        """Check if provided password matches the stored hash."""
        return bcrypt.checkpw(
            _password_bytes(password),
            self.hashed_password.encode('utf-8')
        )

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Generate password hash using bcrypt."""
        return bcrypt.hashpw(
            _password_bytes(password),
            bcrypt.gensalt(rounds=10)
        ).decode('utf-8')

    @property
    def is_active(self) -> bool:
        return self.status == "active"
