import logging
import os
from urllib.parse import urlsplit

import bleach
from markupsafe import Markup

from advent_messages import translate

TOTAL_DOORS = 24
FINALE_DAY = 24
DOOR_TYPES = ("image", "download", "link", "video")
DEFAULT_TYPE = "image"
FINALE_URL = os.environ.get("ADVENT_FINALE_URL", "https://guideos.de/download/")

URL_FIELDS = ("imageUrl", "linkUrl", "videoUrl")
TEXT_FIELDS = ("title", "downloadLabel", "linkLabel")

ALLOWED_DESCRIPTION_TAGS = {"a", "br", "strong", "em", "b", "i", "u", "p", "ul", "ol", "li", "blockquote", "code"}
ALLOWED_DESCRIPTION_ATTRS = {
    "a": ["href", "title", "target", "rel"],
}


def default_door(day):
    door = {
        "day": day,
        "title": "",
        "type": DEFAULT_TYPE,
        "description": "",
        "imageUrl": "",
        "imageId": 0,
        "downloadLabel": "",
        "linkUrl": "",
        "linkLabel": "",
        "videoUrl": "",
    }
    # Das letzte Türchen ist ohne eigene Angaben der Download
    if day == FINALE_DAY:
        door.update(
            {
                "type": "download",
                "linkUrl": FINALE_URL,
                "downloadLabel": translate("finale_label"),
            }
        )
    return door


def clamp_day(raw_day):
    try:
        value = int(raw_day)
    except (TypeError, ValueError):
        return None
    return max(1, min(value, TOTAL_DOORS))


def sanitize_url(value):
    text = str(value or "").strip()
    if not text or any(char.isspace() for char in text):
        return ""
    try:
        parts = urlsplit(text)
    except ValueError:
        return ""
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return ""
    return text


def sanitize_text(value):
    if value is None:
        return ""
    return Markup(str(value)).striptags()


def sanitize_description(value):
    if not value:
        return ""
    return bleach.clean(
        str(value),
        tags=ALLOWED_DESCRIPTION_TAGS,
        attributes=ALLOWED_DESCRIPTION_ATTRS,
        protocols=["http", "https", "mailto"],
        strip=True,
    ).strip()


def sanitize_type(value):
    door_type = str(value or "").strip().lower()
    if door_type in DOOR_TYPES:
        return door_type
    return DEFAULT_TYPE


def sanitize_image_id(value):
    try:
        image_id = int(value)
    except (TypeError, ValueError):
        return 0
    return max(image_id, 0)


def _has_value(value):
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _index_raw_doors(raw_list):
    if not isinstance(raw_list, (list, tuple)):
        if raw_list:
            logging.warning("Türchenliste hat ein unerwartetes Format: %s", type(raw_list).__name__)
        return {}

    indexed = {}
    for position, entry in enumerate(raw_list, start=1):
        if not isinstance(entry, dict):
            continue
        day = clamp_day(entry.get("day"))
        if day is None:
            day = clamp_day(position)
        indexed[day] = entry
    return indexed


def sanitize_door(day, raw_entry=None):
    door = default_door(day)
    for key, value in (raw_entry or {}).items():
        if key == "day" or key not in door:
            continue
        if _has_value(value):
            door[key] = value

    door["day"] = day
    door["type"] = sanitize_type(door["type"])
    for field in URL_FIELDS:
        door[field] = sanitize_url(door[field])
    for field in TEXT_FIELDS:
        door[field] = sanitize_text(door[field])
    door["description"] = sanitize_description(door["description"])
    door["imageId"] = sanitize_image_id(door["imageId"])

    if not door["title"]:
        door["title"] = translate("door_title", day=day)
    if not door["downloadLabel"]:
        door["downloadLabel"] = translate("download_label")
    if not door["linkLabel"]:
        door["linkLabel"] = translate("link_label")
    return door


def sanitize_doors(raw_list):
    """Normalize authored door entries into the 24 doors of a calendar.

    Entries are matched to days by their ``day`` value (clamped to 1-24,
    the last entry wins on duplicates). Entries without a usable day take
    the day of their list position. Missing days get default doors, so the
    result always has exactly one door per day in ascending order.
    """
    indexed = _index_raw_doors(raw_list)
    return [sanitize_door(day, indexed.get(day)) for day in range(1, TOTAL_DOORS + 1)]


def door_summary(door):
    return {"day": door["day"], "title": door["title"], "type": door["type"]}
