import logging

import advent_availability
import advent_cache
from advent_content import render_door_content
from advent_doors import TOTAL_DOORS
from advent_messages import translate

DEBUG = True

AJAX_ACTION = "advent_open_door"

ERROR_STATUS = {
    "invalid_request": 400,
    "invalid_nonce": 403,
    "missing_door": 404,
    "expired": 410,
    "locked": 423,
}


class RevealError(Exception):
    """A reveal request that must be answered with a failure payload."""

    def __init__(self, code):
        super().__init__(code)
        self.code = code
        self.status_code = ERROR_STATUS.get(code, 400)
        self.message = translate(code)

    def to_payload(self):
        return {"success": False, "data": {"code": self.code, "message": self.message}}


def parse_day(raw_day):
    try:
        day = int(str(raw_day).strip())
    except (TypeError, ValueError):
        return None
    if 1 <= day <= TOTAL_DOORS:
        return day
    return None


def reveal_door(instance_id, raw_day, token, test_mode, anti_forgery, action=AJAX_ACTION, now=None):
    """Authorize and render a single door of a cached calendar instance.

    The checks run in a fixed order: anti-forgery token, request shape,
    cached instance, door, availability. Nothing is written, so repeated
    reveals of the same door return the same content.
    """
    if not anti_forgery.verify(AJAX_ACTION, token):
        raise RevealError("invalid_nonce")

    instance_id = str(instance_id or "").strip()
    day = parse_day(raw_day)
    if action != AJAX_ACTION or not instance_id or day is None:
        raise RevealError("invalid_request")

    instance = advent_cache.get_instance(instance_id)
    if instance is None:
        if DEBUG:
            logging.debug("Kalender %s ist nicht (mehr) zwischengespeichert", instance_id)
        raise RevealError("expired")

    door = advent_cache.find_door(instance, day)
    if door is None:
        logging.error("Türchen %s fehlt im zwischengespeicherten Kalender %s", day, instance_id)
        raise RevealError("missing_door")

    current_day = advent_availability.available_day(now)
    if not test_mode and day > current_day:
        if DEBUG:
            logging.debug("Türchen %s von Kalender %s ist noch verschlossen (verfügbar bis %s)", day, instance_id, current_day)
        raise RevealError("locked")

    payload = dict(door)
    payload["content"] = str(render_door_content(door))
    return {"door": payload, "testMode": bool(test_mode), "availableDay": current_day}
