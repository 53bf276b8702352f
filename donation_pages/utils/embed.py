"""
Turn embed block URLs into iframe sources.
"""

import re
from typing import Tuple
from urllib.parse import urlparse

_YOUTUBE_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=)([a-zA-Z0-9_-]{11})"),
    re.compile(r"(?:youtu\.be/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"(?:youtube\.com/embed/)([a-zA-Z0-9_-]{11})"),
]
_VIMEO_PATTERNS = [
    re.compile(r"(?:player\.vimeo\.com/video/)(\d+)"),
    re.compile(r"(?:vimeo\.com/)(\d+)"),
]


def parse_video_url(url: str) -> Tuple[str | None, str | None]:
    """Returns (provider, video_id) or (None, None) for non-video URLs."""
    for pat in _YOUTUBE_PATTERNS:
        m = pat.search(url)
        if m:
            return "youtube", m.group(1)
    for pat in _VIMEO_PATTERNS:
        m = pat.search(url)
        if m:
            return "vimeo", m.group(1)
    return None, None


def iframe_src(url: str | None) -> str | None:
    """
    Player URL for YouTube/Vimeo links, the URL itself for any other
    http(s) page, None when there is nothing safe to frame.
    """
    u = (url or "").strip()
    if not u:
        return None
    if urlparse(u).scheme not in ("http", "https"):
        return None
    provider, vid = parse_video_url(u)
    if provider == "youtube":
        return f"https://www.youtube.com/embed/{vid}"
    if provider == "vimeo":
        return f"https://player.vimeo.com/video/{vid}"
    return u
