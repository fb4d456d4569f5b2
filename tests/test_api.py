"""
HTTP-level tests through FastAPI's TestClient.
"""
import pytest


def _setup(client, tournament_format="league", n_teams=4, config=None):
    body = {"title": "Torneo Apertura", "format": tournament_format}
    if config is not None:
        body["config"] = config
    res = client.post("/tournaments", json=body)
    assert res.status_code == 200, res.text
    tournament_id = res.json()["id"]

    team_ids = []
    for i in range(n_teams):
        team = client.post("/teams", json={"name": f"Club {i + 1}", "logo_emoji": "⚽"}).json()
        res = client.post(f"/tournaments/{tournament_id}/participants", json={"team_id": team["id"]})
        assert res.status_code == 200, res.text
        team_ids.append(team["id"])
    return tournament_id, team_ids


def _all_matches(client, tournament_id):
    detail = client.get(f"/tournaments/{tournament_id}").json()
    return [m for r in detail["rounds"] for m in r["matches"]]


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestSetup:
    def test_create_tournament_with_default_config(self, client):
        res = client.post("/tournaments", json={"title": "Copa", "format": "single_elimination"})
        data = res.json()
        assert data["status"] == "pending"
        assert data["config"]["playoff"]["penalties_on_tie"] is True

    def test_invalid_payloads(self, client):
        assert client.post("/tournaments", json={"title": "Co", "format": "league"}).status_code == 422
        assert client.post("/tournaments", json={"title": "Copa", "format": "swiss"}).status_code == 422
        assert client.post("/teams", json={"name": "X"}).status_code == 422

    def test_duplicate_participant(self, client):
        tournament_id, team_ids = _setup(client, n_teams=1)
        res = client.post(f"/tournaments/{tournament_id}/participants", json={"team_id": team_ids[0]})
        assert res.status_code == 400
        assert "inscrito" in res.json()["detail"]

    def test_unknown_tournament(self, client):
        res = client.get("/tournaments/no-existe")
        assert res.status_code == 404
        assert res.json() == {"detail": "Torneo no encontrado."}

    def test_participants_listing(self, client):
        tournament_id, _ = _setup(client, n_teams=3)
        data = client.get(f"/tournaments/{tournament_id}/participants").json()
        assert data["count"] == 3
        assert {p["logo_emoji"] for p in data["items"]} == {"⚽"}


class TestLeagueFlow:
    def test_fixture_results_and_standings(self, client):
        tournament_id, _ = _setup(client)

        res = client.post(f"/tournaments/{tournament_id}/fixture/league")
        assert res.status_code == 200
        assert res.json() == {"rounds_created": 3, "matches_created": 6}

        again = client.post(f"/tournaments/{tournament_id}/fixture/league")
        assert again.status_code == 409

        matches = _all_matches(client, tournament_id)
        res = client.post(f"/matches/{matches[0]['id']}/result", json={"home_score": 3, "away_score": 1})
        assert res.status_code == 200, res.text
        assert res.json()["outcome"] == "recorded"

        standings = client.get(f"/tournaments/{tournament_id}/standings").json()
        assert standings["score_label"] == "Goles"
        top = standings["items"][0]
        assert (top["team_id"], top["pts"], top["dg"]) == (matches[0]["home"]["id"], 3, 2)

        detail = client.get(f"/tournaments/{tournament_id}").json()
        played = next(m for r in detail["rounds"] for m in r["matches"] if m["id"] == matches[0]["id"])
        assert played["result"] == "3-1"
        assert detail["rounds"][0]["phase_state"] == "in_progress"
        assert detail["champion"] is None

    def test_result_validation(self, client):
        tournament_id, _ = _setup(client, n_teams=2)
        client.post(f"/tournaments/{tournament_id}/fixture/league")
        match_id = _all_matches(client, tournament_id)[0]["id"]

        half_penalties = client.post(
            f"/matches/{match_id}/result", json={"home_score": 1, "away_score": 1, "penalty_home": 4}
        )
        assert half_penalties.status_code == 422
        negative = client.post(f"/matches/{match_id}/result", json={"home_score": -1, "away_score": 0})
        assert negative.status_code == 422

    def test_events_endpoints(self, client):
        tournament_id, _ = _setup(client, n_teams=2)
        client.post(f"/tournaments/{tournament_id}/fixture/league")
        match = _all_matches(client, tournament_id)[0]

        res = client.post(
            f"/matches/{match['id']}/events",
            json={"team_id": match["home"]["id"], "event_type": "goal", "minute": 33},
        )
        assert res.status_code == 200, res.text
        event_id = res.json()["event"]["id"]
        assert client.get(f"/matches/{match['id']}/events").json()["count"] == 1

        res = client.delete(f"/matches/{match['id']}/events/{event_id}")
        assert res.status_code == 200
        assert res.json()["home_score"] == 0

        assert client.delete(f"/matches/{match['id']}/events/{event_id}").status_code == 404


class TestKnockoutFlow:
    def test_bracket_advancement_and_cascade(self, client):
        tournament_id, _ = _setup(client, "single_elimination", 4)
        res = client.post(f"/tournaments/{tournament_id}/fixture/single-elimination", json={"use_seeding": False})
        assert res.json() == {"rounds_created": 2, "matches_created": 3}

        bracket = client.get(f"/tournaments/{tournament_id}/bracket").json()
        semis, final = bracket["rounds"][0]["matches"], bracket["rounds"][1]["matches"][0]
        assert final["home"]["name"] == "TBD"

        client.post(f"/matches/{semis[0]['id']}/result", json={"home_score": 2, "away_score": 0})
        client.post(f"/matches/{semis[1]['id']}/result", json={"home_score": 1, "away_score": 0})

        conflict = client.post(f"/matches/{semis[0]['id']}/result", json={"home_score": 0, "away_score": 2})
        assert conflict.status_code == 409

        impact = client.get(f"/matches/{semis[0]['id']}/revert-impact", params={"home_score": 0, "away_score": 2})
        assert impact.status_code == 200
        report = impact.json()
        assert [a["match_id"] for a in report["affected_matches"]] == [final["id"]]

        unconfirmed = client.post(f"/matches/{semis[0]['id']}/revert", json={"home_score": 0, "away_score": 2})
        assert unconfirmed.status_code == 400

        res = client.post(
            f"/matches/{semis[0]['id']}/revert",
            json={"home_score": 0, "away_score": 2, "confirmed": True, "expected_match_ids": [final["id"]]},
        )
        assert res.status_code == 200, res.text
        assert res.json()["winner_id"] == semis[0]["away"]["id"]

        res = client.post(f"/matches/{final['id']}/result", json={"home_score": 0, "away_score": 0, "penalty_home": 3, "penalty_away": 2})
        assert res.json()["tournament_status"] == "finished"
        champion = client.get(f"/tournaments/{tournament_id}/champion").json()["champion"]
        assert champion["team_id"] == semis[0]["away"]["id"]

        advance = client.post(f"/matches/{final['id']}/advance").json()
        assert advance["writes"] == 0

    def test_delete_endpoints(self, client):
        tournament_id, _ = _setup(client, "single_elimination", 4)
        client.post(f"/tournaments/{tournament_id}/fixture/single-elimination")
        bracket = client.get(f"/tournaments/{tournament_id}/bracket").json()
        final_round = bracket["rounds"][1]

        impact = client.get(f"/impact/round/{final_round['round_id']}").json()
        assert impact["reverts_to_pending"] is True
        assert client.get("/impact/team/x").status_code == 400
        assert client.get("/impact/match/no-existe").status_code == 404

        assert client.delete(f"/rounds/{final_round['round_id']}").status_code == 400
        res = client.delete(f"/rounds/{final_round['round_id']}", params={"confirmed": True})
        assert res.json()["tournament_status"] == "pending"

        res = client.delete(f"/tournaments/{tournament_id}/rounds", params={"confirmed": True})
        assert res.json()["rounds_deleted"] == 1


class TestGroupsFlow:
    @pytest.mark.parametrize("num_groups,qualifiers,status", [(2, 2, 200), (3, 1, 400)])
    def test_groups_phase(self, client, num_groups, qualifiers, status):
        tournament_id, _ = _setup(client, "groups_then_playoff", 6)
        res = client.post(
            f"/tournaments/{tournament_id}/fixture/groups",
            json={"num_groups": num_groups, "qualifiers_per_group": qualifiers},
        )
        assert res.status_code == status, res.text
        if status == 200:
            assert set(res.json()["groups"]) == {"A", "B"}
            group_a = client.get(f"/tournaments/{tournament_id}/standings", params={"group": "A"}).json()
            assert len(group_a["items"]) == 3
            assert client.get(f"/tournaments/{tournament_id}/standings", params={"group": "Z"}).status_code == 404
            assert client.post(f"/tournaments/{tournament_id}/fixture/playoff").status_code == 400
