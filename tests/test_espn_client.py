import asyncio
import json
from datetime import timedelta

import httpx
import pytest
from tenacity import wait_none

from cfb_reconcile.models.enums import Category
from cfb_reconcile.scrapers.base_scraper import BaseClient, ScraperError
from cfb_reconcile.scrapers.collector import collect_espn_schedules, load_ncaa_dump, schedule_cache_key
from cfb_reconcile.scrapers.espn_client import EspnClient
from cfb_reconcile.storage.cache_manager import MemoryCache

TEAMS_PAYLOAD = {
    "sports": [{"leagues": [{"teams": [{"team": {"id": "52", "displayName": "Towson Tigers", "abbreviation": "TOW"}}]}]}]
}


def schedule_payload(team_id, season):
    return {
        "events": [
            {
                "id": f"{team_id}{season}",
                "date": f"{season}-09-07T16:00Z",
                "name": "Towson Tigers at Maryland Terrapins",
                "competitions": [
                    {
                        "competitors": [
                            {"homeAway": "home", "team": {"id": "120"}},
                            {"homeAway": "away", "team": {"id": team_id}},
                        ]
                    }
                ],
            }
        ]
    }


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(BaseClient._make_request.retry, "wait", wait_none())


def make_client(handler):
    return EspnClient(Category.FOOTBALL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def run(coro):
    return asyncio.run(coro)


class TestFetchTeams:
    def test_success(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=TEAMS_PAYLOAD)

        client = make_client(handler)
        teams = run(client.fetch_teams())
        assert [t.id for t in teams] == ["52"]
        assert seen[0].url.path.endswith("/football/college-football/teams")
        assert seen[0].url.params["limit"] == "1000"

    def test_not_found_returns_empty(self):
        client = make_client(lambda request: httpx.Response(404))
        assert run(client.fetch_teams()) == []

    def test_auth_failure_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401)

        assert run(make_client(handler).fetch_teams()) == []
        assert len(calls) == 1

    def test_server_errors_are_retried(self):
        responses = [httpx.Response(503), httpx.Response(429), httpx.Response(200, json=TEAMS_PAYLOAD)]

        def handler(request):
            return responses.pop(0)

        teams = run(make_client(handler).fetch_teams())
        assert [t.id for t in teams] == ["52"]
        assert responses == []

    def test_invalid_json_is_a_scraper_error(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(ScraperError):
            run(client.fetch_teams_raw())


class TestCollectSchedules:
    def test_cached_per_team_and_season(self):
        calls = []

        def handler(request):
            calls.append(request)
            team_id = request.url.path.split("/")[-2]
            return httpx.Response(200, json=schedule_payload(team_id, int(request.url.params["season"])))

        cache = MemoryCache()
        client = make_client(handler)
        schedules = run(collect_espn_schedules(client, cache, ["52", "52"], [2023, 2024], timedelta(days=1)))
        assert sorted(g.season for g in schedules["52"]) == [2023, 2024]
        assert len(calls) == 2
        assert cache.get(schedule_cache_key(Category.FOOTBALL, "52", 2024)) is not None

        again = run(collect_espn_schedules(make_client(handler), cache, ["52"], [2023, 2024], timedelta(days=1)))
        assert len(calls) == 2
        assert [g.espn_id for g in again["52"]] == [g.espn_id for g in schedules["52"]]

    def test_failed_fetches_are_not_cached(self):
        cache = MemoryCache()
        client = make_client(lambda request: httpx.Response(404))
        schedules = run(collect_espn_schedules(client, cache, ["52"], [2024], timedelta(days=1)))
        assert schedules == {"52": []}
        assert cache.get(schedule_cache_key(Category.FOOTBALL, "52", 2024)) is None


def test_load_ncaa_dump(tmp_path):
    (tmp_path / "teams.json").write_text(
        json.dumps(
            [
                {"school_name": "Towson", "school_url": "https://www.ncaa.com/schools/towson"},
                {"school_name": "Bowdoin"},
            ]
        )
    )
    (tmp_path / "team_ids.json").write_text(json.dumps([{"team_name": "Towson", "ncaa_id": "264"}]))
    (tmp_path / "details.json").write_text(json.dumps({"https://www.ncaa.com/schools/towson": {"conference": "CAA"}}))
    (tmp_path / "coaches.json").write_text(json.dumps({"264": "Pete Shinnick"}))
    (tmp_path / "schedules.json").write_text(
        json.dumps(
            {
                "264": [
                    {"date": "9/7/2024", "opponent_name": "@ Maryland", "opponent_ncaa_id": "392"},
                    {"date": "9/9/2023", "opponent_name": "Bucknell", "opponent_ncaa_id": "83"},
                ]
            }
        )
    )

    dump = load_ncaa_dump(tmp_path, seasons=[2024])
    assert [(t.school_name, t.ncaa_id, t.conference) for t in dump.teams] == [("Towson", "264", "CAA")]
    assert [t.school_name for t in dump.teams_without_ids] == ["Bowdoin"]
    assert dump.head_coaches == {"264": "Pete Shinnick"}
    assert dump.coordinators == []
    assert [g.season for g in dump.schedules["264"]] == [2024]
