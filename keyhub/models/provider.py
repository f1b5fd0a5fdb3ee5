"""
Provider, provider model and credential database models.
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean,
    ForeignKey, Index, DateTime, Enum
)
from sqlalchemy.orm import relationship

from keyhub.core.database import Base


class VendorKind(str, enum.Enum):
    """Wire protocol spoken by a provider; selects the vendor adapter."""
    GOOGLE = "google"
    ANTHROPIC = "anthropic"
    OPENAI_COMPATIBLE = "openai_compatible"


class Provider(Base):
    """Upstream vendor configuration."""
    
    __tablename__ = "providers"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    vendor_kind = Column(
        Enum(
            VendorKind,
            native_enum=False,
            length=32,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False,
        default=VendorKind.OPENAI_COMPATIBLE,
    )
    base_url = Column(String(500))  # Vendor default when empty
    default_model = Column(String(100))  # Used when the caller names no model
    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)  # Higher priority = tried first
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    models = relationship("ProviderModel", back_populates="provider", cascade="all, delete-orphan")
    credentials = relationship("Credential", back_populates="provider", cascade="all, delete-orphan")
    
    __table_args__ = (
        Index('idx_provider_active_priority', 'is_active', 'priority'),
    )


class ProviderModel(Base):
    """Model identifier a provider declares it can serve."""
    
    __tablename__ = "provider_models"
    
    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    model_id = Column(String(100), nullable=False)  # e.g. gemini-2.5-flash
    name = Column(String(100))  # Display name
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    
    provider = relationship("Provider", back_populates="models")
    
    __table_args__ = (
        Index('idx_provider_model', 'provider_id', 'model_id', unique=True),
    )


class Credential(Base):
    """One API key belonging to a provider, with its own health and priority."""
    
    __tablename__ = "provider_api_keys"
    
    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100))
    api_key = Column(Text, nullable=False)
    model_id = Column(String(100))  # Optional restriction to a single model
    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    
    # Health counters, mutated with atomic UPDATEs only
    total_requests = Column(Integer, default=0, nullable=False)
    failed_requests = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    last_used_at = Column(DateTime)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    provider = relationship("Provider", back_populates="credentials")
    
    __table_args__ = (
        Index('idx_key_provider_active', 'provider_id', 'is_active'),
    )
    
    @property
    def display_name(self) -> str:
        """Name shown in error details; never the secret itself."""
        return self.name or f"key-{self.id}"
