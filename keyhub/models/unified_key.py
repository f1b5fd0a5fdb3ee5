"""
Caller-facing unified API key model.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime

from keyhub.core.database import Base


class UnifiedApiKey(Base):
    """Key a client presents to the gateway's OpenAI-compatible endpoint."""
    
    __tablename__ = "unified_api_keys"
    
    id = Column(Integer, primary_key=True, index=True)
    api_key = Column(String(200), unique=True, nullable=False, index=True)
    name = Column(String(100))
    is_active = Column(Boolean, default=True, nullable=False)
    total_requests = Column(Integer, default=0, nullable=False)
    failed_requests = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
