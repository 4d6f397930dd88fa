"""
Public pages of the current site.

Every route here is guarded: the router-level :func:`protect_request`
dependency runs before the handler and ends blocked requests with a login
redirect, a fallback redirect or (for feeds) a 404.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from xml.etree import ElementTree as ET

from fastapi import APIRouter, Depends, Request, Response

from access.dependencies import is_feed_request, protect_request, resolve_current_site
from auth.dependencies import get_optional_user
from config import settings
from models import Site, User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"], dependencies=[Depends(protect_request)])

RSS_MEDIA_TYPE = "application/rss+xml"
ATOM_MEDIA_TYPE = "application/atom+xml"
ATOM_NS = "http://www.w3.org/2005/Atom"


def _site_title(site: Site) -> str:
    return site.name or site.domain


def _rss_feed(site: Site) -> str:
    """Channel-only RSS 2.0 document for the site."""
    rss = ET.Element("rss", version="2.0")
    channel = ET.SubElement(rss, "channel")
    ET.SubElement(channel, "title").text = _site_title(site)
    ET.SubElement(channel, "link").text = site.url(settings.SITE_SCHEME)
    ET.SubElement(channel, "description").text = f"Updates from {_site_title(site)}"
    ET.SubElement(channel, "lastBuildDate").text = datetime.now(timezone.utc).strftime(
        "%a, %d %b %Y %H:%M:%S +0000"
    )
    return ET.tostring(rss, encoding="unicode", xml_declaration=True)


def _atom_feed(site: Site) -> str:
    feed = ET.Element("feed", xmlns=ATOM_NS)
    ET.SubElement(feed, "title").text = _site_title(site)
    ET.SubElement(feed, "id").text = site.url(settings.SITE_SCHEME)
    ET.SubElement(feed, "link", href=site.url(settings.SITE_SCHEME))
    ET.SubElement(feed, "updated").text = (
        datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )
    return ET.tostring(feed, encoding="unicode", xml_declaration=True)


@router.get("/")
async def site_home(
    request: Request,
    site: Site = Depends(resolve_current_site),
    user: Optional[User] = Depends(get_optional_user),
):
    """Site front page. ``?feed=rss2`` serves the RSS feed instead."""
    if is_feed_request(request):
        return Response(_rss_feed(site), media_type=RSS_MEDIA_TYPE)

    return {
        "site_id": site.id,
        "name": _site_title(site),
        "url": site.url(settings.SITE_SCHEME),
        "user": user.username if user else None,
    }


@router.get("/feed")
async def rss_feed(site: Site = Depends(resolve_current_site)):
    return Response(_rss_feed(site), media_type=RSS_MEDIA_TYPE)


@router.get("/feed/atom")
async def atom_feed(site: Site = Depends(resolve_current_site)):
    return Response(_atom_feed(site), media_type=ATOM_MEDIA_TYPE)
