"""
Unit tests for round-robin, single-elimination and cross-group seeding.
"""
from itertools import combinations

import pytest

from app.core.pairing import (
    arrange_cross_group_seeding,
    bracket_seed_order,
    generate_round_robin,
    generate_single_elimination,
    group_by_round,
    label_for_match_count,
    round_label,
    seeded_entry_order,
)
from app.errors import ValidationError


def _pairs(items):
    return [frozenset((m["home_team_id"], m["away_team_id"])) for m in items]


class TestRoundRobin:
    @pytest.mark.parametrize("n", [2, 4, 6, 8])
    def test_even_count_rounds_and_pairs(self, n):
        teams = [f"T{i}" for i in range(n)]
        rounds = group_by_round(generate_round_robin(teams))

        assert len(rounds) == n - 1
        for items in rounds.values():
            playing = [t for m in items for t in (m["home_team_id"], m["away_team_id"])]
            assert sorted(playing) == sorted(teams)

        pairs = _pairs(generate_round_robin(teams))
        assert len(pairs) == len(set(pairs))
        assert set(pairs) == {frozenset(p) for p in combinations(teams, 2)}

    @pytest.mark.parametrize("n", [3, 5, 7])
    def test_odd_count_one_team_rests_each_round(self, n):
        teams = [f"T{i}" for i in range(n)]
        items = generate_round_robin(teams)
        rounds = group_by_round(items)

        assert len(rounds) == n
        assert len(items) == n * (n - 1) // 2
        resting = []
        for matches in rounds.values():
            playing = {t for m in matches for t in (m["home_team_id"], m["away_team_id"])}
            missing = set(teams) - playing
            assert len(missing) == 1
            resting.extend(missing)
        assert sorted(resting) == sorted(teams)

    def test_first_round_pairs_outer_entrants(self):
        items = group_by_round(generate_round_robin(["A", "B", "C", "D"]))
        first = [(m["home_team_id"], m["away_team_id"]) for m in items[1]]
        assert first == [("A", "D"), ("B", "C")]

    def test_double_round_swaps_home_and_away(self):
        teams = ["A", "B", "C", "D"]
        items = generate_round_robin(teams, double_round=True)
        rounds = group_by_round(items)

        assert len(rounds) == 6
        first_half = [m for m in items if m["round"] <= 3]
        second_half = [m for m in items if m["round"] > 3]
        assert {(m["home_team_id"], m["away_team_id"]) for m in second_half} == {
            (m["away_team_id"], m["home_team_id"]) for m in first_half
        }
        assert len(_pairs(items)) == 12

    def test_no_bye_in_output(self):
        items = generate_round_robin(["A", "B", "C"])
        assert all("__BYE__" not in (m["home_team_id"], m["away_team_id"]) for m in items)

    def test_rejects_duplicates_and_small_lists(self):
        with pytest.raises(ValidationError):
            generate_round_robin(["A"])
        with pytest.raises(ValidationError):
            generate_round_robin(["A", "B", "A"])


class TestRoundLabels:
    def test_labels_from_the_end(self):
        assert [round_label(r, 4) for r in range(1, 5)] == ["R1", "Quarterfinal", "Semifinal", "Final"]

    def test_labels_from_match_count(self):
        assert label_for_match_count(1, 3) == "Final"
        assert label_for_match_count(2, 2) == "Semifinal"
        assert label_for_match_count(4, 2) == "Quarterfinal"
        assert label_for_match_count(8, 1) == "R1"


class TestSingleElimination:
    @pytest.mark.parametrize("k", [1, 2, 3, 4])
    def test_power_of_two_shape(self, k):
        n = 2 ** k
        bracket = generate_single_elimination([f"T{i}" for i in range(n)])

        assert len(bracket) == n - 1
        sizes = [len([m for m in bracket if m["round"] == r]) for r in range(1, k + 1)]
        assert sizes == [2 ** (k - r) for r in range(1, k + 1)]
        assert bracket[-1]["round_label"] == "Final"
        assert bracket[-1]["next_match_index"] is None

    def test_links_point_to_half_index_in_next_block(self):
        bracket = generate_single_elimination([f"T{i}" for i in range(8)])
        links = [(m["index"], m["next_match_index"], m["next_slot"]) for m in bracket]
        assert links == [
            (0, 4, "home"),
            (1, 4, "away"),
            (2, 5, "home"),
            (3, 5, "away"),
            (4, 6, "home"),
            (5, 6, "away"),
            (6, None, None),
        ]

    def test_first_round_pairs_adjacent_entries(self):
        bracket = generate_single_elimination(["A", "B", "C", "D"])
        assert (bracket[0]["home_team_id"], bracket[0]["away_team_id"]) == ("A", "B")
        assert (bracket[1]["home_team_id"], bracket[1]["away_team_id"]) == ("C", "D")
        assert bracket[2]["home_team_id"] is None and bracket[2]["away_team_id"] is None
        assert [m["round_label"] for m in bracket] == ["Semifinal", "Semifinal", "Final"]

    def test_non_power_of_two_rejected(self):
        with pytest.raises(ValidationError, match="potencia de 2"):
            generate_single_elimination(["A", "B", "C", "D", "E", "F"])

    def test_byes_place_entrant_in_next_match(self):
        bracket = generate_single_elimination(["A", "B", "C"], allow_byes=True)
        assert len(bracket) == 3
        bye = bracket[0]
        assert bye["is_bye"]
        assert (bracket[1]["home_team_id"], bracket[1]["away_team_id"]) == ("B", "C")
        assert bracket[2]["home_team_id"] == "A"

    @pytest.mark.parametrize("n_teams", [5, 6, 7, 9, 12])
    def test_every_slot_is_filled_or_fed(self, n_teams):
        teams = [f"T{i}" for i in range(1, n_teams + 1)]
        bracket = generate_single_elimination(teams, allow_byes=True)

        first_round = [m for m in bracket if m["round"] == 1]
        assert all(m["home_team_id"] or m["away_team_id"] for m in first_round)
        placed = {t for m in first_round for t in (m["home_team_id"], m["away_team_id"]) if t}
        assert placed == set(teams)

        fed = {(m["next_match_index"], m["next_slot"]) for m in bracket if not m["is_bye"] and m["next_match_index"] is not None}
        for m in bracket:
            if m["round"] == 1:
                continue
            for slot in ("home", "away"):
                assert m[f"{slot}_team_id"] is not None or (m["index"], slot) in fed

    def test_two_byes_in_one_match_rejected(self):
        with pytest.raises(ValidationError, match="dos byes"):
            generate_single_elimination(["A", None, None, "B"])

    def test_requires_two_entrants(self):
        with pytest.raises(ValidationError):
            generate_single_elimination(["A"])


class TestSeeding:
    def test_bracket_seed_order(self):
        assert bracket_seed_order(2) == [1, 2]
        assert bracket_seed_order(4) == [1, 4, 2, 3]
        assert bracket_seed_order(8) == [1, 8, 4, 5, 2, 7, 3, 6]

    def test_top_seeds_only_meet_in_final(self):
        order = bracket_seed_order(16)
        top_half, bottom_half = order[:8], order[8:]
        assert 1 in top_half and 2 in bottom_half

    def test_seeded_entry_order_pads_with_byes(self):
        teams = [f"S{i}" for i in range(1, 7)]
        assert seeded_entry_order(teams) == ["S1", None, "S4", "S5", "S2", None, "S3", "S6"]


class TestCrossGroupSeeding:
    def _qualifiers(self, groups, per_group):
        return [
            {"team_id": f"{g}{p}", "group": g, "position": p}
            for g in groups
            for p in range(1, per_group + 1)
        ]

    def test_one_per_group_pairs_opposite_groups(self):
        groups = ["A", "B", "C", "D"]
        order = arrange_cross_group_seeding(self._qualifiers(groups, 1), groups, 1)
        assert order == ["A1", "D1", "B1", "C1"]

    def test_two_per_group_keeps_groups_apart(self):
        groups = ["A", "B", "C", "D"]
        order = arrange_cross_group_seeding(self._qualifiers(groups, 2), groups, 2)

        assert order == ["A1", "D2", "B1", "C2", "D1", "A2", "C1", "B2"]
        for i in range(0, len(order), 2):
            assert order[i][0] != order[i + 1][0]

    def test_same_group_winners_in_opposite_halves(self):
        groups = ["A", "B"]
        order = arrange_cross_group_seeding(self._qualifiers(groups, 2), groups, 2)
        assert order == ["A1", "B2", "B1", "A2"]

    def test_unsupported_qualifier_count(self):
        groups = ["A", "B"]
        with pytest.raises(ValidationError):
            arrange_cross_group_seeding(self._qualifiers(groups, 3), groups, 3)

    def test_team_in_two_groups(self):
        qualifiers = [
            {"team_id": "X", "group": "A", "position": 1},
            {"team_id": "X", "group": "B", "position": 1},
        ]
        with pytest.raises(ValidationError, match="grupos"):
            arrange_cross_group_seeding(qualifiers, ["A", "B"], 1)

    def test_missing_qualifier(self):
        qualifiers = [{"team_id": "A1", "group": "A", "position": 1}]
        with pytest.raises(ValidationError, match="Falta"):
            arrange_cross_group_seeding(qualifiers, ["A", "B"], 1)
