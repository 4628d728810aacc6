import datetime
import json
import re

import advent
import advent_availability
import advent_block
import advent_cache
from advent_client import parse_bootstrap_data


def _local(year, month, day):
    return advent_availability.local_timezone.localize(datetime.datetime(year, month, day, 12, 0))


def _prepare(tmp_path, monkeypatch, pages, today=None):
    monkeypatch.setattr(advent_cache, "CACHE_DATABASE", str(tmp_path / "advent_cache.db"))
    pages_file = tmp_path / "seiten.json"
    pages_file.write_text(json.dumps(pages), encoding="utf-8")
    monkeypatch.setattr(advent, "PAGES_FILE", str(pages_file))
    monkeypatch.setattr(advent_availability, "get_local_datetime", lambda: today or _local(2025, 12, 3))
    return advent.app.test_client()


def _page(*blocks, page_id=1):
    return [{"id": page_id, "title": "Testseite", "blocks": list(blocks)}]


def test_bootstrap_exposes_only_door_summaries(tmp_path, monkeypatch):
    doors = [{"day": 20, "title": "Geheimtür", "type": "link", "linkUrl": "https://example.com/geheim", "description": "Versteckt"}]
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "kalender-a", "doors": doors}))

    body = client.get("/").get_data(as_text=True)
    config = parse_bootstrap_data(body)["kalender-a"]

    assert set(config) == {"postId", "ajaxUrl", "nonce", "testMode", "availableDay", "doors", "messages"}
    assert config["postId"] == 1
    assert config["ajaxUrl"] == "/advent/reveal"
    assert config["availableDay"] == 3
    assert config["testMode"] is False
    assert len(config["doors"]) == 24
    assert config["doors"][19] == {"day": 20, "title": "Geheimtür", "type": "link"}
    assert "example.com/geheim" not in body
    assert "Versteckt" not in body


def test_bootstrap_carries_localized_network_error(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "kalender-a", "doors": []}))

    config = parse_bootstrap_data(client.get("/").get_data(as_text=True))["kalender-a"]
    script = client.get("/static/advent-view.js").get_data(as_text=True)

    assert config["messages"] == {"networkError": "Das Türchen konnte gerade nicht geladen werden. Bitte versuche es später erneut."}
    assert "messages?.networkError" in script
    assert "throw new Error( this.networkError() );" in script
    assert "noch verschlossen" not in script


def test_render_populates_instance_cache(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "kalender-a", "doors": [{"day": 2, "title": "Zwei"}]}, page_id=4))

    client.get("/seite/4")
    instance = advent_cache.get_instance("kalender-a")

    assert instance["ownerPageId"] == 4
    assert len(instance["doors"]) == 24
    assert advent_cache.find_door(instance, 2)["title"] == "Zwei"


def test_doors_are_marked_by_availability(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "kalender-a", "doors": []}))

    body = client.get("/").get_data(as_text=True)
    locked = dict(re.findall(r'data-day="(\d+)"\s+data-type="\w+"\s+data-locked="(\d)"', body))

    assert len(locked) == 24
    assert [day for day in range(1, 25) if locked[str(day)] == "0"] == [1, 2, 3]
    assert "Testmodus aktiv" not in body


def test_door_order_is_stable_per_instance(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "kalender-a", "doors": []}))

    first = re.findall(r'data-day="(\d+)"', client.get("/").get_data(as_text=True))
    second = re.findall(r'data-day="(\d+)"', client.get("/").get_data(as_text=True))

    assert first == second
    assert sorted(int(day) for day in first) == list(range(1, 25))
    assert advent_block.door_order("kalender-a") == advent_block.door_order("kalender-a")


def test_test_mode_opt_in_sets_cookie_and_flags_render(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "kalender-a", "doors": []}), today=_local(2025, 11, 20))

    response = client.get("/?advent_test=1")
    body = response.get_data(as_text=True)

    cookies = response.headers.getlist("Set-Cookie")
    assert any(header.startswith("advent_test=") and "HttpOnly" in header for header in cookies)
    assert "Testmodus aktiv" in body
    assert "is-test-mode" in body
    assert parse_bootstrap_data(body)["kalender-a"]["testMode"] is True
    assert parse_bootstrap_data(body)["kalender-a"]["availableDay"] == 0

    follow_up = client.get("/").get_data(as_text=True)
    assert parse_bootstrap_data(follow_up)["kalender-a"]["testMode"] is True


def test_block_without_instance_id_renders_nothing(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "", "doors": []}))

    body = client.get("/").get_data(as_text=True)

    assert "advent-calendar__grid" not in body
    assert parse_bootstrap_data(body) == {}
    assert "advent-view.js" not in body


def test_assets_and_bootstrap_are_emitted_once(tmp_path, monkeypatch):
    client = _prepare(
        tmp_path,
        monkeypatch,
        _page({"instanceId": "kalender-a", "doors": []}, {"instanceId": "kalender-b", "doors": []}),
    )

    body = client.get("/").get_data(as_text=True)

    assert body.count("advent-view.js") == 1
    assert body.count("advent-style.css") == 1
    assert body.count('id="advent-calendar-data"') == 1
    assert set(parse_bootstrap_data(body)) == {"kalender-a", "kalender-b"}


def test_unknown_page_returns_404(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, _page({"instanceId": "kalender-a", "doors": []}))

    response = client.get("/seite/99")

    assert response.status_code == 404
    assert "Diese Seite gibt es nicht." in response.get_data(as_text=True)


def test_broken_pages_file_falls_back_to_default(tmp_path, monkeypatch):
    client = _prepare(tmp_path, monkeypatch, [])
    (tmp_path / "seiten.json").write_text("{kaputt", encoding="utf-8")

    body = client.get("/").get_data(as_text=True)

    assert "adventskalender" in parse_bootstrap_data(body)
