from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from database import Base


class Site(Base):
    """
    One tenant of the installation.

    Single-site installs have exactly one row (``MAIN_SITE_ID``). In a
    multisite network every site is resolved by its ``domain``; ``path``
    is kept so the public URL can be rebuilt.
    """

    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(255), nullable=False, unique=True)
    path = Column(String(255), nullable=False, default="/")
    name = Column(String(255), nullable=True)

    # Archived sites are hidden from "My Sites" unless explicitly requested
    is_archived = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def url(self, scheme: str = "http") -> str:
        path = self.path or "/"
        if not path.endswith("/"):
            path += "/"
        return f"{scheme}://{self.domain}{path}"

    def __repr__(self):
        return f"<Site(id={self.id}, domain={self.domain})>"
