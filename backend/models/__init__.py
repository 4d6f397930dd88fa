from .site import Site
from .site_membership import SiteMembership
from .options import SiteOption, NetworkOption
from .user import User

__all__ = [
    "Site",
    "SiteMembership",
    "SiteOption",
    "NetworkOption",
    "User",
]
