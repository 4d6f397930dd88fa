"""User model for authentication and authorization."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from database import Base


class User(Base):
    """
    Account that can sign in to any site of the installation.

    Site-level privileges live in :class:`SiteMembership`. ``is_super_admin``
    is the network-wide override and is only meaningful in multisite mode;
    on a single site the administrators of the main site play that part.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=True)

    is_super_admin = Column(Boolean, default=False, nullable=False)

    # Site the network sends the user to when they are blocked elsewhere
    primary_site_id = Column(Integer, ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)

    local_password_hash = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    last_login_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<User {self.username} super_admin={self.is_super_admin}>"
