"""
Advancement engine.

``plan_advancement`` looks at a snapshot of one tournament and a finished
match and returns the writes that advance the winner. It never touches
storage; app/services/advancement.py applies the writes inside the
tournament's transaction. Calling it again on an unchanged snapshot returns
an empty plan.

Two paths:

* static: the match has ``next_match_id``; the winner goes into the linked
  match (slot from ``next_slot``, or the slot a participant of this match
  already holds, or the first empty one).
* dynamic: no link, elimination-style round. Once every match of the round
  is decided the winners are paired 0-1, 2-3, ... into the next round, which
  is created or reused, and the links are written back.

The bracket is complete when a round holding exactly one match has that
match decided.
"""
import logging
from dataclasses import dataclass, field
from uuid import uuid4

from app.core.pairing import label_for_match_count
from app.core.phases import away_goals_enabled, phase_name, phase_type_for
from app.core.tiebreak import AggregateResult, single_match_winner, two_legged_winner

logger = logging.getLogger(__name__)

RESET_VALUES = {
    "status": "pending",
    "home_score": None,
    "away_score": None,
    "extra_time_home": None,
    "extra_time_away": None,
    "penalties_played": False,
    "penalty_home": None,
    "penalty_away": None,
    "aggregate_home": None,
    "aggregate_away": None,
    "aggregate_winner_id": None,
}


@dataclass
class TournamentState:
    tournament: dict
    rounds: dict[str, dict]
    matches: dict[str, dict]
    event_counts: dict[str, int] = field(default_factory=dict)

    @property
    def config(self) -> dict:
        return self.tournament.get("config") or {}

    def round_matches(self, round_id: str) -> list[dict]:
        return sorted(
            (m for m in self.matches.values() if m["round_id"] == round_id),
            key=lambda m: (int(m["sort_order"]), m["id"]),
        )

    def round_by_number(self, number: int) -> dict | None:
        for r in self.rounds.values():
            if int(r["number"]) == number:
                return r
        return None

    def legs(self, match: dict) -> tuple[dict, dict] | None:
        paired = match.get("paired_match_id")
        if not paired or paired not in self.matches:
            return None
        other = self.matches[paired]
        if match.get("is_second_leg"):
            return other, match
        return match, other

    def deciding_match(self, match: dict) -> dict:
        """The match whose link carries the tie forward (leg 2 of a pair)."""
        legs = self.legs(match)
        return legs[1] if legs else match

    def with_match(self, match_id: str, **values) -> "TournamentState":
        matches = dict(self.matches)
        matches[match_id] = {**matches[match_id], **values}
        return TournamentState(self.tournament, self.rounds, matches, self.event_counts)


@dataclass(frozen=True)
class CreateRound:
    round_id: str
    number: int
    phase_name: str
    phase_type: str


@dataclass(frozen=True)
class CreateMatch:
    values: dict


@dataclass(frozen=True)
class UpdateMatch:
    match_id: str
    values: dict


@dataclass(frozen=True)
class SetTournamentStatus:
    status: str


@dataclass
class AdvancementPlan:
    match_id: str
    outcome: str
    winner_id: str | None = None
    aggregate: AggregateResult | None = None
    writes: list = field(default_factory=list)


def decide(state: TournamentState, match: dict) -> tuple[AggregateResult | None, str | None]:
    """Winner of the tie ``match`` belongs to, or None while undecided."""
    legs = state.legs(match)
    if legs is None:
        if match.get("status") != "finished":
            return None, None
        return None, single_match_winner(match)

    leg1, leg2 = legs
    if leg1.get("status") != "finished" or leg2.get("status") != "finished":
        return None, None
    return two_legged_winner(leg1, leg2, away_goals_enabled(state.config))


def _aggregate_writes(state: TournamentState, match: dict, aggregate: AggregateResult) -> list:
    writes = []
    for leg in state.legs(match):
        values = {
            "aggregate_home": aggregate.home,
            "aggregate_away": aggregate.away,
            "aggregate_winner_id": aggregate.winner_id,
        }
        if any(leg.get(k) != v for k, v in values.items()):
            writes.append(UpdateMatch(leg["id"], values))
    return writes


def _slot_writes(state: TournamentState, source: dict, winner_id: str) -> tuple[list, bool]:
    """Writes putting the winner of ``source`` into its linked match."""
    nxt = state.matches.get(source["next_match_id"])
    if nxt is None:
        return [], False

    occupants = {"home": nxt.get("home_team_id"), "away": nxt.get("away_team_id")}
    if winner_id in occupants.values():
        return [], True

    participants = {source.get("home_team_id"), source.get("away_team_id")} - {None}
    slot = source.get("next_slot")
    if slot is None:
        slot = next((s for s in ("home", "away") if occupants[s] in participants), None)
    if slot is None:
        slot = next((s for s in ("home", "away") if occupants[s] is None), None)
    if slot is None or (occupants[slot] is not None and occupants[slot] not in participants):
        logger.warning(
            "Partido %s: ambos lugares de %s ocupados por otros equipos, no se sobrescribe",
            source["id"], nxt["id"],
        )
        return [], False

    stale = occupants[slot] is not None
    targets = [(nxt, slot)]
    legs = state.legs(nxt)
    if legs:
        other = legs[1] if legs[0]["id"] == nxt["id"] else legs[0]
        targets.append((other, "away" if slot == "home" else "home"))

    writes = []
    for target, target_slot in targets:
        values = {f"{target_slot}_team_id": winner_id}
        if stale and (target.get("status") != "pending" or target.get("home_score") is not None):
            values.update(RESET_VALUES)
        writes.append(UpdateMatch(target["id"], values))
    return writes, True


def _finish_writes(state: TournamentState) -> list:
    if state.tournament.get("status") == "finished":
        return []
    return [SetTournamentStatus("finished")]


def _plan_dynamic(state: TournamentState, plan: AdvancementPlan, source: dict) -> AdvancementPlan:
    round_row = state.rounds[source["round_id"]]
    deciding = []
    for m in state.round_matches(source["round_id"]):
        if m.get("is_first_leg"):
            continue
        deciding.append(m)

    if any(m.get("status") != "finished" for m in deciding):
        plan.outcome = "waiting_siblings"
        return plan

    if len(deciding) == 1:
        plan.writes += _finish_writes(state)
        plan.outcome = "tournament_finished"
        return plan

    winners = [decide(state, m)[1] for m in deciding]
    if any(w is None for w in winners):
        plan.outcome = "waiting_siblings"
        return plan
    if len(winners) % 2 == 1:
        logger.warning("Ronda %s con %d partidos: no se pueden emparejar ganadores", round_row["id"], len(winners))
        plan.outcome = "no_op"
        return plan

    next_number = int(round_row["number"]) + 1
    pair_count = len(winners) // 2
    label = label_for_match_count(pair_count, next_number)
    phase_type = phase_type_for(label, pair_count)

    next_round = state.round_by_number(next_number)
    if next_round is None:
        next_round_id = str(uuid4())
        plan.writes.append(CreateRound(next_round_id, next_number, phase_name(phase_type), phase_type))
        existing = []
    else:
        next_round_id = next_round["id"]
        existing = [m for m in state.round_matches(next_round_id) if not m.get("is_second_leg")]

    for i in range(pair_count):
        home, away = winners[2 * i], winners[2 * i + 1]
        if i < len(existing):
            target = existing[i]
            target_id = target["id"]
            if (target.get("home_team_id"), target.get("away_team_id")) != (home, away):
                values = {"home_team_id": home, "away_team_id": away}
                values.update(RESET_VALUES)
                plan.writes.append(UpdateMatch(target_id, values))
        else:
            target_id = str(uuid4())
            plan.writes.append(
                CreateMatch(
                    {
                        "id": target_id,
                        "tournament_id": state.tournament["id"],
                        "round_id": next_round_id,
                        "sort_order": i + 1,
                        "home_team_id": home,
                        "away_team_id": away,
                        "round_label": label,
                    }
                )
            )

        for offset, slot in ((0, "home"), (1, "away")):
            src = deciding[2 * i + offset]
            for leg in state.legs(src) or (src,):
                if leg.get("next_match_id") != target_id or leg.get("next_slot") != slot:
                    plan.writes.append(UpdateMatch(leg["id"], {"next_match_id": target_id, "next_slot": slot}))

    plan.outcome = "round_created" if plan.writes else "no_op"
    return plan


def plan_advancement(state: TournamentState, match_id: str) -> AdvancementPlan:
    match = state.matches[match_id]
    plan = AdvancementPlan(match_id=match_id, outcome="not_finished")
    if match.get("status") != "finished":
        return plan

    legs = state.legs(match)
    if legs and legs[1].get("status") != "finished":
        plan.outcome = "awaiting_second_leg"
        return plan

    aggregate, winner = decide(state, match)
    plan.aggregate = aggregate
    plan.winner_id = winner
    if aggregate is not None:
        plan.writes += _aggregate_writes(state, match, aggregate)

    tournament_format = state.tournament["format"]
    source = state.deciding_match(match)

    if tournament_format == "league":
        if all(m.get("status") == "finished" for m in state.matches.values()):
            plan.writes += _finish_writes(state)
            plan.outcome = "tournament_finished"
        else:
            plan.outcome = "recorded"
        return plan

    if winner is None:
        plan.outcome = "undecided"
        return plan

    if source.get("next_match_id"):
        writes, placed = _slot_writes(state, source, winner)
        plan.writes += writes
        plan.outcome = "advanced" if placed else "conflict"
        return plan

    if tournament_format == "groups_then_playoff" and not source.get("round_label"):
        plan.outcome = "group_phase"
        return plan

    return _plan_dynamic(state, plan, source)
