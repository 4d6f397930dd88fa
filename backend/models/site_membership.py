from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from database import Base


class SiteMembership(Base):
    """
    A user's role on one site.

    ``administrator`` grants the site-admin override of the access checks;
    any other role only makes the user a member of the site.
    """

    __tablename__ = "site_memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="subscriber")

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "site_id", name="uq_site_membership"),
    )

    def __repr__(self):
        return f"<SiteMembership(user={self.user_id}, site={self.site_id}, role={self.role})>"
