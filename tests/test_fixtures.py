"""
Fixture generation against a real (in-memory SQLite) database.
"""
from collections import Counter

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app import repository as repo
from app.errors import ConflictError, PartialFailure, ValidationError
from app.services.fixtures import (
    add_match_to_round,
    generate_groups_phase,
    generate_league_fixture,
    generate_playoff_from_groups,
    generate_single_elimination_fixture,
)


class TestLeagueFixture:
    def test_every_pair_meets_once(self, engine, make_tournament, tournament_row, matches_of):
        tournament_id, team_ids = make_tournament("league", 6)

        with engine.begin() as conn:
            result = generate_league_fixture(conn, tournament_id)

        assert result == {"rounds_created": 5, "matches_created": 15}
        matches = matches_of(tournament_id)
        pairs = {frozenset((m["home_team_id"], m["away_team_id"])) for m in matches}
        assert len(pairs) == 15
        assert all(m["round_label"] is None for m in matches)
        assert tournament_row(tournament_id)["status"] == "active"

        with engine.connect() as conn:
            names = [r["phase_name"] for r in repo.list_rounds(conn, tournament_id)]
        assert names == [f"Jornada {i}" for i in range(1, 6)]

    def test_odd_team_count(self, engine, make_tournament, matches_of):
        tournament_id, _ = make_tournament("league", 5)
        with engine.begin() as conn:
            result = generate_league_fixture(conn, tournament_id)
        assert result == {"rounds_created": 5, "matches_created": 10}
        per_round = Counter(m["round_number"] for m in matches_of(tournament_id))
        assert set(per_round.values()) == {2}

    def test_double_round_from_config(self, engine, make_tournament, tournament_row):
        tournament_id, _ = make_tournament("league", 4, config={"double_round": True})
        with engine.begin() as conn:
            result = generate_league_fixture(conn, tournament_id)
        assert result == {"rounds_created": 6, "matches_created": 12}
        assert tournament_row(tournament_id)["config"]["double_round"] is True

    def test_cannot_generate_twice(self, engine, make_tournament):
        tournament_id, _ = make_tournament("league", 4)
        with engine.begin() as conn:
            generate_league_fixture(conn, tournament_id)
        with engine.begin() as conn, pytest.raises(ConflictError):
            generate_league_fixture(conn, tournament_id)

    def test_wrong_format(self, engine, make_tournament):
        tournament_id, _ = make_tournament("single_elimination", 4)
        with engine.begin() as conn, pytest.raises(ValidationError, match="formato"):
            generate_league_fixture(conn, tournament_id)

    def test_needs_two_approved_teams(self, engine, make_tournament):
        tournament_id, _ = make_tournament("league", 1)
        with engine.begin() as conn, pytest.raises(ValidationError, match="al menos 2"):
            generate_league_fixture(conn, tournament_id)

    def test_pending_participants_ignored(self, engine, make_tournament, matches_of):
        tournament_id, _ = make_tournament("league", 2)
        with engine.begin() as conn:
            extra = repo.create_team(conn, "Suplente")
            repo.add_participant(conn, tournament_id, extra["id"], status="pending")
            generate_league_fixture(conn, tournament_id)
        teams = {t for m in matches_of(tournament_id) for t in (m["home_team_id"], m["away_team_id"])}
        assert extra["id"] not in teams


class TestSingleEliminationFixture:
    def test_bracket_is_linked(self, engine, make_tournament, matches_of):
        tournament_id, team_ids = make_tournament("single_elimination", 8)

        with engine.begin() as conn:
            result = generate_single_elimination_fixture(conn, tournament_id)

        assert result == {"rounds_created": 3, "matches_created": 7}
        matches = matches_of(tournament_id)
        by_id = {m["id"]: m for m in matches}
        quarters = [m for m in matches if m["round_label"] == "Quarterfinal"]
        final = next(m for m in matches if m["round_label"] == "Final")

        assert {t for m in quarters for t in (m["home_team_id"], m["away_team_id"])} == set(team_ids)
        assert final["next_match_id"] is None
        for m in quarters:
            assert by_id[m["next_match_id"]]["round_label"] == "Semifinal"
        targets = Counter((m["next_match_id"], m["next_slot"]) for m in matches if m["next_match_id"])
        assert set(targets.values()) == {1}

        with engine.connect() as conn:
            rounds = repo.list_rounds(conn, tournament_id)
        assert [r["phase_type"] for r in rounds] == ["quarterfinals", "semifinals", "final"]
        assert [r["phase_name"] for r in rounds] == ["Cuartos de Final", "Semifinales", "Final"]

    def test_seeded_bracket(self, engine, make_tournament, matches_of):
        tournament_id, team_ids = make_tournament("single_elimination", 4, seeded=True)
        with engine.begin() as conn:
            generate_single_elimination_fixture(conn, tournament_id, use_seeding=True)

        semis = matches_of(tournament_id, "Semifinal")
        pairs = [(m["home_team_id"], m["away_team_id"]) for m in semis]
        assert pairs == [(team_ids[0], team_ids[3]), (team_ids[1], team_ids[2])]

    def test_rejects_non_power_of_two(self, engine, make_tournament, tournament_row):
        tournament_id, _ = make_tournament("single_elimination", 6)
        with engine.begin() as conn, pytest.raises(ValidationError, match="potencia de 2"):
            generate_single_elimination_fixture(conn, tournament_id)
        assert tournament_row(tournament_id)["status"] == "pending"

    def test_byes_when_allowed(self, engine, make_tournament, matches_of):
        tournament_id, _ = make_tournament("single_elimination", 3, config={"allow_byes": True})
        with engine.begin() as conn:
            result = generate_single_elimination_fixture(conn, tournament_id)

        assert result == {"rounds_created": 2, "matches_created": 2}
        final = matches_of(tournament_id, "Final")[0]
        assert (final["home_team_id"] is None) != (final["away_team_id"] is None)

    @pytest.mark.parametrize("n_teams", [5, 6, 7])
    def test_bracket_with_byes_reaches_a_champion(self, engine, make_tournament, matches_of, play, tournament_row, n_teams):
        tournament_id, _ = make_tournament("single_elimination", n_teams, config={"allow_byes": True})
        with engine.begin() as conn:
            generate_single_elimination_fixture(conn, tournament_id, use_seeding=False)

        for _ in range(n_teams):
            playable = [
                m for m in matches_of(tournament_id)
                if m["status"] != "finished" and m["home_team_id"] and m["away_team_id"]
            ]
            if not playable:
                break
            for m in playable:
                play(m["id"], 1, 0)

        assert tournament_row(tournament_id)["status"] == "finished"
        assert len(matches_of(tournament_id)) == n_teams - 1


class TestGroupsPhase:
    def test_groups_and_shared_rounds(self, engine, make_tournament, matches_of, tournament_row):
        tournament_id, team_ids = make_tournament("groups_then_playoff", 8)

        with engine.begin() as conn:
            result = generate_groups_phase(conn, tournament_id, 2, 2)
            participants = repo.list_participants(conn, tournament_id)
            rounds = repo.list_rounds(conn, tournament_id)

        assert result["rounds_created"] == 3
        assert result["matches_created"] == 12
        assert sorted(len(members) for members in result["groups"].values()) == [4, 4]
        assert Counter(p["group_name"] for p in participants) == {"A": 4, "B": 4}
        assert [r["phase_name"] for r in rounds] == [f"Fase de Grupos - Jornada {i}" for i in (1, 2, 3)]
        assert all(r["phase_type"] == "group" for r in rounds)

        group_of = {p["team_id"]: p["group_name"] for p in participants}
        for m in matches_of(tournament_id):
            assert group_of[m["home_team_id"]] == group_of[m["away_team_id"]]
        assert tournament_row(tournament_id)["config"]["qualifiers_per_group"] == 2

    def test_custom_assignments(self, engine, make_tournament):
        tournament_id, t = make_tournament("groups_then_playoff", 4)
        assignments = {"A": [t[0], t[3]], "B": [t[1], t[2]]}
        with engine.begin() as conn:
            result = generate_groups_phase(conn, tournament_id, 2, 1, custom_assignments=assignments)
        assert result["groups"] == assignments

    @pytest.mark.parametrize(
        "assignments,message",
        [
            ({"A": [0, 1], "C": [2, 3]}, "no es válido"),
            ({"A": [0, 1], "B": [1, 2]}, "múltiples grupos"),
            ({"A": [0, 1], "B": [2]}, "al menos 2"),
            ({"A": [0, 1, 2]}, "incompleta"),
        ],
    )
    def test_invalid_custom_assignments(self, engine, make_tournament, assignments, message):
        tournament_id, t = make_tournament("groups_then_playoff", 4)
        by_id = {g: [t[i] for i in idx] for g, idx in assignments.items()}
        with engine.begin() as conn, pytest.raises(ValidationError, match=message):
            generate_groups_phase(conn, tournament_id, 2, 1, custom_assignments=by_id)

    def test_qualifier_total_must_be_power_of_two(self, engine, make_tournament):
        tournament_id, _ = make_tournament("groups_then_playoff", 9)
        with engine.begin() as conn, pytest.raises(ValidationError, match="potencia de 2"):
            generate_groups_phase(conn, tournament_id, 3, 1)

    def test_storage_failure_cleans_up(self, engine, make_tournament, monkeypatch, caplog):
        tournament_id, _ = make_tournament("groups_then_playoff", 8)
        original = repo.insert_match
        calls = {"n": 0, "nested": []}

        def flaky_insert(conn, values):
            calls["n"] += 1
            calls["nested"].append(conn.in_nested_transaction())
            if calls["n"] > 3:
                raise SQLAlchemyError("fallo simulado")
            return original(conn, values)

        monkeypatch.setattr(repo, "insert_match", flaky_insert)

        with engine.connect() as conn:
            with pytest.raises(PartialFailure, match="fase de grupos") as excinfo:
                generate_groups_phase(conn, tournament_id, 2, 2)
            assert "ADVERTENCIA" not in str(excinfo.value)
            assert all(calls["nested"])
            assert "No se pudieron eliminar" not in caplog.text
            assert repo.count_rounds(conn, tournament_id) == 0
            assert all(p["group_name"] is None for p in repo.list_participants(conn, tournament_id))
            assert repo.get_tournament(conn, tournament_id)["status"] == "pending"
            conn.rollback()


def _play_all_groups(play, matches_of, tournament_id):
    for m in matches_of(tournament_id):
        if m["round_label"] is None:
            play(m["id"], 1, 0)


class TestPlayoffFromGroups:
    def test_requires_finished_groups(self, engine, make_tournament):
        tournament_id, _ = make_tournament("groups_then_playoff", 8)
        with engine.begin() as conn:
            generate_groups_phase(conn, tournament_id, 2, 2)
        with engine.begin() as conn, pytest.raises(ValidationError, match="Faltan 12"):
            generate_playoff_from_groups(conn, tournament_id)

    def test_cross_group_bracket(self, engine, make_tournament, matches_of, play):
        tournament_id, _ = make_tournament("groups_then_playoff", 8)
        with engine.begin() as conn:
            generate_groups_phase(conn, tournament_id, 2, 2)
        _play_all_groups(play, matches_of, tournament_id)

        with engine.begin() as conn:
            result = generate_playoff_from_groups(conn, tournament_id)
            group_of = {p["team_id"]: p["group_name"] for p in repo.list_participants(conn, tournament_id)}
            rounds = repo.list_rounds(conn, tournament_id)

        assert result["rounds_created"] == 2
        assert result["matches_created"] == 3
        assert [r["number"] for r in rounds] == [1, 2, 3, 4, 5]
        for semi in matches_of(tournament_id, "Semifinal"):
            assert group_of[semi["home_team_id"]] != group_of[semi["away_team_id"]]

        with engine.begin() as conn, pytest.raises(ConflictError, match="ya ha sido generada"):
            generate_playoff_from_groups(conn, tournament_id)

    def test_two_legged_semifinals(self, engine, make_tournament, matches_of, play):
        config = {"playoff": {"two_legged": True, "two_legged_phases": ["semifinals"]}}
        tournament_id, _ = make_tournament("groups_then_playoff", 8, config=config)
        with engine.begin() as conn:
            generate_groups_phase(conn, tournament_id, 2, 2)
        _play_all_groups(play, matches_of, tournament_id)

        with engine.begin() as conn:
            result = generate_playoff_from_groups(conn, tournament_id)
            rounds = repo.list_rounds(conn, tournament_id)

        assert result["rounds_created"] == 3
        assert result["matches_created"] == 5
        assert [r["phase_name"] for r in rounds[3:]] == ["Semifinales - Ida", "Semifinales - Vuelta", "Final"]

        semis = matches_of(tournament_id, "Semifinal")
        first_legs = [m for m in semis if m["is_first_leg"]]
        by_id = {m["id"]: m for m in semis}
        final = matches_of(tournament_id, "Final")[0]
        assert len(first_legs) == 2
        for leg1 in first_legs:
            leg2 = by_id[leg1["paired_match_id"]]
            assert leg2["is_second_leg"]
            assert leg2["paired_match_id"] == leg1["id"]
            assert (leg2["home_team_id"], leg2["away_team_id"]) == (leg1["away_team_id"], leg1["home_team_id"])
            assert leg1["next_match_id"] == leg2["next_match_id"] == final["id"]


class TestManualMatches:
    def test_add_match_to_round(self, engine, make_tournament, matches_of):
        tournament_id, t = make_tournament("league", 4)
        with engine.begin() as conn:
            round_id = repo.insert_round(conn, tournament_id, 1, "Jornada 1", max_matches=2)
            add_match_to_round(conn, round_id, t[0], t[1])

            with pytest.raises(ValidationError, match="Ya existe"):
                add_match_to_round(conn, round_id, t[1], t[0])
            with pytest.raises(ValidationError, match="ya juega"):
                add_match_to_round(conn, round_id, t[0], t[2])

            add_match_to_round(conn, round_id, t[2], t[3])
            with pytest.raises(ValidationError, match="Límite"):
                add_match_to_round(conn, round_id, t[0], t[3])

        assert len(matches_of(tournament_id)) == 2
