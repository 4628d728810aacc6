"""Client side of the reveal protocol.

``AdventCalendarClient`` keeps the door states of one calendar instance,
remembers opened doors in a local storage and fetches door content from the
reveal endpoint. ``static/advent-view.js`` does the same in the browser.
"""

import html
import json
import logging
import re

import requests

from advent_block import DATA_ELEMENT_ID
from advent_doors import TOTAL_DOORS
from advent_messages import translate
from advent_reveal import AJAX_ACTION

REQUEST_TIMEOUT = 10

LOCKED = "locked"
UNLOCKED = "unlocked"
OPENED = "opened"


class StorageError(Exception):
    """Local storage is unavailable or full."""


class MemoryStorage:
    """Dictionary backed stand-in for the browser's localStorage."""

    def __init__(self, items=None, available=True):
        self.items = dict(items or {})
        self.available = available

    def get_item(self, key):
        if not self.available:
            raise StorageError("storage unavailable")
        return self.items.get(key)

    def set_item(self, key, value):
        if not self.available:
            raise StorageError("storage unavailable")
        self.items[key] = value


class RequestsTransport:
    """Posts reveal requests with a shared ``requests`` session."""

    def __init__(self, session=None, timeout=REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def __call__(self, url, form):
        response = self.session.post(url, data=form, timeout=self.timeout)
        return response.status_code, response.json()


class DoorButton:
    def __init__(self, day, title="", door_type="image"):
        self.day = day
        self.title = title
        self.type = door_type
        self.state = LOCKED
        self.loading = False

    @property
    def interactive(self):
        return self.state != LOCKED and not self.loading


class Modal:
    def __init__(self):
        self.is_open = False
        self.body = ""

    def open(self, content):
        self.body = content
        self.is_open = True

    def close(self):
        self.is_open = False

    def handle_key(self, key):
        if key == "Escape" and self.is_open:
            self.close()

    def click_backdrop(self):
        self.close()


class AdventCalendarClient:
    def __init__(self, instance_id, config, storage, transport):
        self.instance_id = instance_id
        self.config = config or {}
        self.storage = storage
        self.transport = transport
        self.storage_key = f"advent-calendar-{instance_id}-doors"
        self.test_mode = bool(self.config.get("testMode"))
        self.available_day = _coerce_int(self.config.get("availableDay"))
        self.status = ""
        self.status_type = "neutral"
        self.needs_reload = False
        self.modal = Modal()
        self.opened_doors = set(self.read_storage())
        self.doors = {}
        for entry in self.config.get("doors") or []:
            day = _coerce_int(entry.get("day")) if isinstance(entry, dict) else 0
            if 1 <= day <= TOTAL_DOORS:
                self.doors[day] = DoorButton(day, entry.get("title", ""), entry.get("type", "image"))
        self.apply_initial_state()

    @property
    def unlocked_until(self):
        return TOTAL_DOORS if self.test_mode else self.available_day

    def read_storage(self):
        try:
            raw = self.storage.get_item(self.storage_key)
            days = json.loads(raw) if raw else []
            return [day for day in days if isinstance(day, int)]
        except (StorageError, ValueError, TypeError) as exc:
            logging.warning("Geöffnete Türchen von %s konnten nicht gelesen werden: %s", self.instance_id, exc)
            return []

    def write_storage(self):
        try:
            self.storage.set_item(self.storage_key, json.dumps(sorted(self.opened_doors)))
        except StorageError as exc:
            logging.warning("Geöffnete Türchen von %s konnten nicht gespeichert werden: %s", self.instance_id, exc)

    def apply_initial_state(self):
        for day, button in self.doors.items():
            if day in self.opened_doors:
                button.state = OPENED
            elif day <= self.unlocked_until:
                button.state = UNLOCKED
            else:
                button.state = LOCKED

    def refresh_unlocks(self):
        for day, button in self.doors.items():
            if button.state == LOCKED and day <= self.unlocked_until:
                button.state = UNLOCKED

    def set_status(self, message, status_type="neutral"):
        self.status = message or ""
        self.status_type = status_type

    def begin_reveal(self, day):
        """Put the door into its loading state and return the request form.

        Returns ``None`` for locked, unknown or already loading doors.
        """
        button = self.doors.get(day)
        if button is None or not button.interactive:
            return None
        button.loading = True
        self.set_status("")
        return {
            "action": AJAX_ACTION,
            "instance": self.instance_id,
            "day": str(day),
            "nonce": self.config.get("nonce") or "",
        }

    def complete_reveal(self, day, status_code, payload):
        button = self.doors[day]
        try:
            if status_code >= 400 or not isinstance(payload, dict) or not payload.get("success"):
                data = payload.get("data") if isinstance(payload, dict) else None
                data = data if isinstance(data, dict) else {}
                if data.get("code") == "expired":
                    self.needs_reload = True
                self.set_status(data.get("message") or translate("network_error"), "error")
                return False

            data = payload.get("data") or {}
            door = data.get("door") or {}
            content = door.get("content")
            if not content:
                return False

            self.test_mode = bool(data.get("testMode", self.test_mode))
            self.available_day = _coerce_int(data.get("availableDay"), self.available_day)
            self.opened_doors.add(day)
            self.write_storage()
            button.state = OPENED
            self.refresh_unlocks()
            self.modal.open(content)
            return True
        finally:
            button.loading = False

    def fail_reveal(self, day, message):
        button = self.doors[day]
        button.loading = False
        self.set_status(message, "error")

    def click(self, day):
        """Reveal ``day`` through the transport; ``None`` when the click is ignored."""
        form = self.begin_reveal(day)
        if form is None:
            return None
        try:
            status_code, payload = self.transport(self.config.get("ajaxUrl"), form)
        except (requests.RequestException, ValueError) as exc:
            logging.warning("Türchen %s von %s konnte nicht geladen werden: %s", day, self.instance_id, exc)
            self.fail_reveal(day, translate("network_error"))
            return False
        return self.complete_reveal(day, status_code, payload)


def parse_bootstrap_data(page):
    match = re.search(
        r'<script type="application/json" id="' + DATA_ELEMENT_ID + r'">(.*?)</script>',
        page or "",
        re.DOTALL,
    )
    if not match:
        return {}
    try:
        data = json.loads(match.group(1))
    except ValueError as exc:
        logging.warning("Kalenderdaten konnten nicht gelesen werden: %s", exc)
        return {}
    return data if isinstance(data, dict) else {}


def bootstrap_calendars(page, storage, transport):
    config_map = parse_bootstrap_data(page)
    calendars = {}
    for match in re.findall(r'<section class="advent-calendar[^"]*" data-instance="([^"]+)"', page or ""):
        instance_id = html.unescape(match)
        if instance_id in config_map and config_map[instance_id].get("ajaxUrl"):
            calendars[instance_id] = AdventCalendarClient(instance_id, config_map[instance_id], storage, transport)
    return calendars


def _coerce_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
