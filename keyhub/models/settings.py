"""
Rotation settings singleton.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, Boolean, DateTime, Enum

from keyhub.core.database import Base


class RotationStrategy(str, enum.Enum):
    """How credentials of different providers are ordered."""
    PER_PROVIDER = "per_provider"
    GLOBAL = "global"


class RotationSettings(Base):
    """Rotation configuration (singleton table)."""
    
    __tablename__ = "rotation_settings"
    
    id = Column(Integer, primary_key=True)
    strategy = Column(
        Enum(
            RotationStrategy,
            native_enum=False,
            length=20,
            values_callable=lambda strategies: [s.value for s in strategies],
        ),
        default=RotationStrategy.PER_PROVIDER,
        nullable=False,
    )
    fallback_enabled = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
