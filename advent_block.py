import logging
import random

from flask import current_app, render_template_string, request, url_for
from flask_wtf.csrf import CSRFError, generate_csrf, validate_csrf
from itsdangerous import BadSignature, URLSafeTimedSerializer
from markupsafe import Markup
from wtforms.validators import ValidationError

import advent_availability
import advent_cache
from advent_doors import TOTAL_DOORS, door_summary, sanitize_doors
from advent_messages import translate
from advent_reveal import AJAX_ACTION

DEBUG = True

TEST_COOKIE = "advent_test"
TEST_PARAMETER = "advent_test"
TEST_COOKIE_MAX_AGE = 24 * 60 * 60
DATA_ELEMENT_ID = "advent-calendar-data"

tuerchen_farben = ["#FFCCCC", "#CCFFCC", "#CCCCFF", "#FFFFCC", "#CCFFFF", "#FFCCFF", "#FFCC99", "#99CCFF", "#FF9999", "#99FF99", "#9999FF", "#FF9966"] * 2

# Asset-ID -> (Art, Datei im static-Ordner)
ASSETS = {
    "advent-view": ("script", "advent-view.js"),
    "advent-style": ("style", "advent-style.css"),
}


class FlaskWTFAntiForgery:
    """Anti-forgery tokens bound to the visitor's session and an action name."""

    def issue(self, action):
        return generate_csrf(token_key=action)

    def verify(self, action, token):
        try:
            validate_csrf(token, token_key=action)
        except (ValidationError, CSRFError) as exc:
            logging.warning("CSRF-Validierung für %s fehlgeschlagen: %s", action, exc)
            return False
        return True


anti_forgery = FlaskWTFAntiForgery()


class RenderAccumulator:
    """Collects calendar bootstrap data and assets while one page renders.

    Blocks register themselves during rendering; the page template flushes
    everything once at the end of the document.
    """

    def __init__(self):
        self.instances = {}
        self.assets = []

    def enqueue(self, asset_id):
        if asset_id not in ASSETS:
            logging.warning("Unbekanntes Asset angefordert: %s", asset_id)
            return
        if asset_id not in self.assets:
            self.assets.append(asset_id)

    def register_instance(self, instance_id, settings):
        self.instances[instance_id] = settings

    def asset_urls(self, kind):
        return [url_for("static", filename=ASSETS[asset_id][1]) for asset_id in self.assets if ASSETS[asset_id][0] == kind]

    def bootstrap_script(self):
        if not self.instances:
            return Markup("")
        return Markup(render_template_string(BOOTSTRAP_SCRIPT, element_id=DATA_ELEMENT_ID, instances=self.instances))


def _test_mode_serializer():
    return URLSafeTimedSerializer(current_app.secret_key, salt=TEST_COOKIE)


def issue_test_marker():
    return _test_mode_serializer().dumps(request.host_url)


def has_test_marker():
    token = request.cookies.get(TEST_COOKIE)
    if not token:
        return False
    try:
        _test_mode_serializer().loads(token, max_age=TEST_COOKIE_MAX_AGE)
    except BadSignature:
        return False
    return True


def resolve_test_mode():
    """Return ``(test_mode, new_marker)`` for the current request.

    ``new_marker`` is only set when the visitor opts in via the query
    parameter and must be stored as cookie on the response.
    """
    if request.args.get(TEST_PARAMETER) == "1":
        if DEBUG:
            logging.debug("Testmodus für %s aktiviert", request.remote_addr)
        return True, issue_test_marker()
    return has_test_marker(), None


def set_test_cookie(response, marker):
    response.set_cookie(
        TEST_COOKIE,
        marker,
        max_age=TEST_COOKIE_MAX_AGE,
        path="/",
        secure=request.is_secure,
        httponly=True,
        samesite="Lax",
    )
    return response


def door_order(instance_id):
    # Stabile Zufallsreihenfolge je Kalender
    return random.Random(instance_id).sample(range(1, TOTAL_DOORS + 1), TOTAL_DOORS)


def render_calendar_block(accumulator, block, post_id, test_mode, now=None):
    instance_id = str((block or {}).get("instanceId") or "").strip()
    if not instance_id:
        return Markup("")

    doors = sanitize_doors(block.get("doors"))
    advent_cache.put_instance(instance_id, post_id, doors)

    current_day = advent_availability.available_day(now)
    unlocked_until = advent_availability.effective_available_day(test_mode, now)

    accumulator.register_instance(
        instance_id,
        {
            "postId": post_id,
            "ajaxUrl": url_for("reveal"),
            "nonce": anti_forgery.issue(AJAX_ACTION),
            "testMode": bool(test_mode),
            "availableDay": current_day,
            "doors": [door_summary(door) for door in doors],
            "messages": {"networkError": translate("network_error")},
        },
    )
    accumulator.enqueue("advent-view")
    accumulator.enqueue("advent-style")

    if DEBUG:
        logging.debug(
            "Kalender %s auf Seite %s gerendert - verfügbar bis %s, Testmodus: %s",
            instance_id,
            post_id,
            current_day,
            test_mode,
        )

    doors_by_day = {door["day"]: door for door in doors}
    return Markup(
        render_template_string(
            CALENDAR_BLOCK,
            instance_id=instance_id,
            doors=[doors_by_day[day] for day in door_order(instance_id)],
            unlocked_until=unlocked_until,
            current_day=current_day,
            test_mode=test_mode,
            tuerchen_farben=tuerchen_farben,
            translate=translate,
        )
    )


BOOTSTRAP_SCRIPT = '''<script type="application/json" id="{{ element_id }}">{{ instances|tojson }}</script>'''

CALENDAR_BLOCK = '''
<section class="advent-calendar{% if test_mode %} is-test-mode{% endif %}" data-instance="{{ instance_id }}">
  {% if test_mode %}
    <p class="advent-calendar__test-banner">{{ translate("test_mode_banner") }}</p>
  {% endif %}
  <div class="advent-calendar__grid">
    {% for door in doors %}
      <button type="button"
              class="advent-calendar__door{% if door.day <= unlocked_until %} is-unlocked{% endif %}{% if door.day == current_day %} current-day{% endif %}"
              data-day="{{ door.day }}"
              data-type="{{ door.type }}"
              data-locked="{{ '0' if door.day <= unlocked_until else '1' }}"
              aria-pressed="false"
              aria-label="{{ door.title }}"
              style="--door-color: {{ tuerchen_farben[door.day - 1] }};">
        <span class="door-number">{{ "%02d"|format(door.day) }}</span>
      </button>
    {% endfor %}
  </div>
  <p class="advent-calendar__status" role="status" aria-live="polite"></p>
  <div class="advent-calendar__modal" hidden>
    <div class="advent-calendar__modal-backdrop"></div>
    <div class="advent-calendar__modal-content" role="dialog" aria-modal="true">
      <button class="advent-calendar__modal-close" type="button" aria-label="{{ translate('modal_close') }}">&times;</button>
      <div class="advent-calendar__modal-body"></div>
    </div>
  </div>
</section>
'''
