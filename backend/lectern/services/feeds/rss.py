"""
Lectern RSS — RSS 2.0 feeds with iTunes and Media RSS extensions.
"""
from __future__ import annotations

import datetime as dt
import xml.etree.ElementTree as ET
from email.utils import format_datetime
from typing import Iterable, List, Optional

from lectern.models.models import Video
from lectern.services.media.sources import MediaResolver

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
MEDIA_NS = "http://search.yahoo.com/mrss/"
ATOM_NS = "http://www.w3.org/2005/Atom"

ET.register_namespace("itunes", ITUNES_NS)
ET.register_namespace("media", MEDIA_NS)
ET.register_namespace("atom", ATOM_NS)

FEED_TTL_MINUTES = 60


def _text(parent: ET.Element, tag: str, value) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = str(value)
    return element


def _pub_date(value: Optional[dt.date]) -> str:
    if value is None:
        value = dt.datetime.now(dt.timezone.utc)
    elif not isinstance(value, dt.datetime):
        value = dt.datetime(value.year, value.month, value.day, tzinfo=dt.timezone.utc)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return format_datetime(value)


def build_feed(
    videos: Iterable[Video],
    resolver: MediaResolver,
    *,
    title: str,
    description: str,
    site_url: str,
    feed_url: str,
    categories: Optional[List[str]] = None,
) -> bytes:
    site_url = site_url.rstrip("/")
    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")
    _text(channel, "title", title)
    _text(channel, "description", description)
    _text(channel, "link", site_url)
    ET.SubElement(channel, f"{{{ATOM_NS}}}link", {
        "href": feed_url, "rel": "self", "type": "application/rss+xml",
    })
    _text(channel, "language", "en")
    _text(channel, "lastBuildDate", _pub_date(None))
    _text(channel, "ttl", FEED_TTL_MINUTES)
    for category in categories or []:
        _text(channel, "category", category)

    for video in videos:
        media_url = resolver.resolve(video.vid_url)
        item = ET.SubElement(channel, "item")
        _text(item, "title", video.display_title)
        _text(item, "description", f"Sermon by {video.vid_preacher}")
        _text(item, "link", f"{site_url}/video/{video.id}")
        _text(item, "guid", video.id).set("isPermaLink", "false")
        for category in filter(None, (video.vid_category, video.search_category)):
            _text(item, "category", category)
        if video.vid_preacher:
            _text(item, "author", video.vid_preacher)
            _text(item, f"{{{ITUNES_NS}}}author", video.vid_preacher)
        _text(item, "pubDate", _pub_date(video.date))
        if media_url:
            ET.SubElement(item, "enclosure", {"url": media_url, "type": "video/mp4", "length": "0"})
            ET.SubElement(item, f"{{{MEDIA_NS}}}content", {
                "url": media_url, "type": "video/mp4", "medium": "video",
            })
        if video.runtime_minutes:
            _text(item, f"{{{ITUNES_NS}}}duration", round(video.runtime_minutes * 60))

    return ET.tostring(rss, encoding="utf-8", xml_declaration=True)
