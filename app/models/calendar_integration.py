# ===== app/models/calendar_integration.py =====
from sqlalchemy import Column, String, Boolean, DateTime, LargeBinary, Uuid
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    provider = Column(String, default="google")
    is_active = Column(Boolean, default=True)
    calendar_id = Column(String, default="primary")

    # OAuth tokens, encrypted with cryptography.fernet
    access_token_encrypted = Column(LargeBinary)
    refresh_token_encrypted = Column(LargeBinary)
    token_expires_at = Column(DateTime(timezone=True))

    # Set when the provider rejects the stored credentials
    needs_reauth = Column(Boolean, default=False)

    last_sync_at = Column(DateTime(timezone=True))
    last_sync_status = Column(String)  # 'success', 'failed', 'degraded'

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
