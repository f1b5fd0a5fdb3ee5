"""
Usage log database model.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Index

from keyhub.core.database import Base


class UsageLog(Base):
    """Append-only record of one upstream attempt."""
    
    __tablename__ = "api_usage_logs"
    
    id = Column(Integer, primary_key=True, index=True)
    
    # Routing context; plain ids so deleting a provider keeps its history
    unified_key_id = Column(Integer, index=True)
    provider_id = Column(Integer, index=True)
    provider_key_id = Column(Integer, index=True)
    model_name = Column(String(100), index=True)
    request_path = Column(String(100))
    
    # Outcome
    status = Column(String(20), nullable=False, index=True)  # success, error
    status_code = Column(Integer)
    error_message = Column(Text)
    
    # Performance and usage
    response_time_ms = Column(Integer)
    tokens_used = Column(Integer)
    
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    
    __table_args__ = (
        Index('idx_usage_provider_status', 'provider_id', 'status'),
    )
