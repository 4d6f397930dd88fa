"""Key/value option rows backing the configuration store."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, UniqueConstraint
from database import Base


class SiteOption(Base):
    """A single per-site setting, e.g. ``site_protect`` or ``allowed_users``."""

    __tablename__ = "site_options"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(JSON, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("site_id", "key", name="uq_site_option"),
    )

    def __repr__(self):
        return f"<SiteOption(site={self.site_id}, key={self.key})>"


class NetworkOption(Base):
    """A network-wide setting. There is only one network per installation."""

    __tablename__ = "network_options"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), nullable=False, unique=True, index=True)
    value = Column(JSON, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<NetworkOption(key={self.key})>"
