import logging
import os
import re

import bleach
import requests
from markupsafe import Markup

from advent_doors import ALLOWED_DESCRIPTION_ATTRS, ALLOWED_DESCRIPTION_TAGS
from advent_messages import translate

OEMBED_TIMEOUT = int(os.environ.get("ADVENT_OEMBED_TIMEOUT", 10))
OEMBED_PROVIDERS = (
    (re.compile(r"^https?://(?:www\.|m\.)?(?:youtube\.com|youtu\.be)/", re.IGNORECASE), "https://www.youtube.com/oembed"),
    (re.compile(r"^https?://(?:www\.|player\.)?vimeo\.com/", re.IGNORECASE), "https://vimeo.com/api/oembed.json"),
)
YOUTUBE_ID_PATTERNS = (
    re.compile(r"youtube\.com/watch\?(?:[^#]*&)?v=([A-Za-z0-9_-]{11})", re.IGNORECASE),
    re.compile(r"youtube(?:-nocookie)?\.com/(?:embed|shorts)/([A-Za-z0-9_-]{11})", re.IGNORECASE),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})", re.IGNORECASE),
)
YOUTUBE_EMBED_URL = "https://www.youtube-nocookie.com/embed/{video_id}"
BLOCK_TAG_PATTERN = re.compile(r"^\s*<(p|ul|ol|blockquote)[\s>]", re.IGNORECASE)


def fetch_oembed(url):
    """Ask the matching oEmbed provider for the embed HTML of ``url``."""
    endpoint = None
    for pattern, provider in OEMBED_PROVIDERS:
        if pattern.match(url):
            endpoint = provider
            break
    if not endpoint:
        return None

    try:
        response = requests.get(endpoint, params={"url": url, "format": "json"}, timeout=OEMBED_TIMEOUT)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        logging.warning("oEmbed-Abfrage für %s fehlgeschlagen: %s", url, exc)
        return None

    html = payload.get("html") if isinstance(payload, dict) else None
    if not html:
        return None
    return Markup(html)


def extract_youtube_id(url):
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return match.group(1)
    return None


def format_description(text):
    if not text:
        return Markup("")

    cleaned = bleach.clean(
        str(text),
        tags=ALLOWED_DESCRIPTION_TAGS,
        attributes=ALLOWED_DESCRIPTION_ATTRS,
        strip=True,
    )
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n").strip()

    paragraphs = []
    for block in re.split(r"\n\s*\n", cleaned):
        block = block.strip()
        if not block:
            continue
        if BLOCK_TAG_PATTERN.match(block):
            paragraphs.append(block)
        else:
            paragraphs.append("<p>" + block.replace("\n", "<br>\n") + "</p>")
    return Markup("\n".join(paragraphs))


def render_video(door):
    video_url = door.get("videoUrl") or ""
    if not video_url:
        return Markup("")

    embed = fetch_oembed(video_url)
    if embed:
        return Markup('<div class="advent-calendar__media advent-calendar__media--video">{}</div>').format(embed)

    video_id = extract_youtube_id(video_url)
    if not video_id:
        return Markup("")
    return Markup(
        '<div class="advent-calendar__media advent-calendar__media--video">'
        '<iframe src="{}" title="{}" loading="lazy" allowfullscreen '
        'allow="accelerometer; encrypted-media; gyroscope; picture-in-picture"></iframe>'
        "</div>"
    ).format(YOUTUBE_EMBED_URL.format(video_id=video_id), door.get("title") or "")


def render_download(door):
    if not door.get("linkUrl"):
        return Markup("")
    return Markup(
        '<p class="advent-calendar__actions">'
        '<a class="advent-calendar__action advent-calendar__action--download" href="{}" download>{}</a>'
        "</p>"
    ).format(door["linkUrl"], door.get("downloadLabel") or translate("download_label"))


def render_link(door):
    if not door.get("linkUrl"):
        return Markup("")
    return Markup(
        '<p class="advent-calendar__actions">'
        '<a class="advent-calendar__action advent-calendar__action--link" href="{}" '
        'target="_blank" rel="noopener noreferrer">{}</a>'
        "</p>"
    ).format(door["linkUrl"], door.get("linkLabel") or translate("link_label"))


def render_image(door):
    if not door.get("imageUrl"):
        return Markup("")
    alt = door.get("title") or translate("image_alt", day=door.get("day"))
    return Markup(
        '<figure class="advent-calendar__media advent-calendar__media--image">'
        '<img src="{}" alt="{}" loading="lazy">'
        "</figure>"
    ).format(door["imageUrl"], alt)


def render_door_content(door):
    parts = []
    if door.get("title"):
        parts.append(Markup('<h2 class="advent-calendar__modal-title">{}</h2>').format(door["title"]))
    if door.get("description"):
        parts.append(
            Markup('<div class="advent-calendar__description">{}</div>').format(
                format_description(door["description"])
            )
        )

    door_type = door.get("type")
    if door_type == "video":
        parts.append(render_video(door))
    elif door_type == "download":
        parts.append(render_download(door))
    elif door_type == "link":
        parts.append(render_link(door))
    else:
        parts.append(render_image(door))

    return Markup("\n").join(part for part in parts if part)

