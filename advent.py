# Adventskalender-Block: Seiten mit eingebetteten Kalendern, Türchen-Freischaltung
# nach Datum und asynchrones Öffnen der Türchen über /advent/reveal

import logging
import json
import os
from flask import (
    Flask,
    after_this_request,
    jsonify,
    make_response,
    render_template_string,
    request,
)
from flask_wtf import CSRFProtect

import advent_availability
import advent_cache
from advent_block import (
    RenderAccumulator,
    anti_forgery,
    has_test_marker,
    render_calendar_block,
    resolve_test_mode,
    set_test_cookie,
)
from advent_messages import translate
from advent_reveal import RevealError, reveal_door

# Logging-Konfiguration
logging.basicConfig(filename=os.environ.get("ADVENT_LOG_FILE", "debug.log"), level=logging.DEBUG,
                    format='%(asctime)s %(levelname)s: %(message)s',
                    datefmt='%Y-%m-%d %H:%M:%S')

# Debugging-Flag
DEBUG = True

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET_KEY", "please-change-me")
# Nonce lebt so lange wie der zwischengespeicherte Kalender
app.config["WTF_CSRF_TIME_LIMIT"] = advent_cache.CACHE_TTL
csrf = CSRFProtect()
csrf.init_app(app)

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
PAGES_FILE = os.environ.get("ADVENT_PAGES_FILE", os.path.join(BASE_DIR, "seiten.json"))
DEFAULT_PAGE_ID = 1

DEFAULT_PAGES = [
    {
        "id": DEFAULT_PAGE_ID,
        "title": "Adventskalender",
        "blocks": [
            {
                "instanceId": "adventskalender",
                "doors": [],
            }
        ],
    }
]


def load_pages():
    if os.path.exists(PAGES_FILE):
        try:
            with open(PAGES_FILE, "r", encoding="utf-8") as file:
                data = json.load(file)
            pages = {}
            for entry in data:
                try:
                    page_id = int(entry.get("id"))
                except (TypeError, ValueError, AttributeError):
                    continue
                blocks = entry.get("blocks") or []
                if not isinstance(blocks, list):
                    blocks = []
                pages[page_id] = {
                    "id": page_id,
                    "title": str(entry.get("title", "") or "").strip() or "Adventskalender",
                    "blocks": [block for block in blocks if isinstance(block, dict)],
                }
            if pages:
                return pages
        except (json.JSONDecodeError, OSError, TypeError, ValueError) as exc:
            logging.error("Fehler beim Laden der Seiten: %s", exc)
    return {page["id"]: page for page in DEFAULT_PAGES}


def render_page(page):
    test_mode, marker = resolve_test_mode()
    if marker:
        @after_this_request
        def store_test_marker(response):
            return set_test_cookie(response, marker)

    now = advent_availability.get_local_datetime()
    accumulator = RenderAccumulator()
    blocks = [
        render_calendar_block(accumulator, block, page["id"], test_mode, now=now)
        for block in page["blocks"]
    ]
    if DEBUG:
        logging.debug("Seite %s gerendert - %s Kalender, Testmodus: %s", page["id"], len(accumulator.instances), test_mode)

    return render_template_string(
        PAGE,
        title=page["title"],
        blocks=[block for block in blocks if block],
        assets=accumulator,
        heute=now.date(),
    )


@app.route('/', methods=['GET'])
def startseite():
    pages = load_pages()
    page = pages.get(DEFAULT_PAGE_ID) or pages[min(pages)]
    return render_page(page)


@app.route('/seite/<int:page_id>', methods=['GET'])
def seite(page_id):
    page = load_pages().get(page_id)
    if not page:
        if DEBUG: logging.debug(f"Seite {page_id} nicht gefunden")
        return make_response(render_template_string(GENERIC_PAGE, content=translate("page_not_found")), 404)
    return render_page(page)


@app.route('/advent/reveal', methods=['POST'])
@csrf.exempt
def reveal():
    result = reveal_door(
        request.form.get("instance"),
        request.form.get("day"),
        request.form.get("nonce"),
        has_test_marker(),
        anti_forgery,
        action=request.form.get("action"),
    )
    if DEBUG:
        logging.debug("Türchen %s von Kalender %s geöffnet", result["door"]["day"], request.form.get("instance"))
    return jsonify({"success": True, "data": result})


@app.errorhandler(RevealError)
def reveal_failed(exc):
    return jsonify(exc.to_payload()), exc.status_code


# HTML-Templates
PAGE = '''
<!doctype html>
<html lang="de">
  <head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ title }}</title>
    {% for href in assets.asset_urls("style") %}
      <link rel="stylesheet" href="{{ href }}">
    {% endfor %}
  </head>
  <body>
    <main>
      <h1>{{ title }}</h1>
      {% for block in blocks %}
        {{ block }}
      {% endfor %}
    </main>
    <footer>
      <div class="footer-inner">Dezember {{ heute.year }}</div>
    </footer>
    {{ assets.bootstrap_script() }}
    {% for src in assets.asset_urls("script") %}
      <script src="{{ src }}" defer></script>
    {% endfor %}
  </body>
</html>
'''

GENERIC_PAGE = '''
<!doctype html>
<html lang="de">
  <head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Adventskalender</title>
  </head>
  <body>
    <main>
      <p>{{ content }}</p>
      <a href="/">Zurück zum Adventskalender</a>
    </main>
  </body>
</html>
'''

if __name__ == '__main__':
    if DEBUG: logging.debug("Starte Flask-App")
    app.run(host='0.0.0.0', port=8087, debug=DEBUG)
