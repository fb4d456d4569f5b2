"""
In-memory tournament snapshots for the pure planner and impact tests.
"""
from app.core.advancement import CreateMatch, CreateRound, SetTournamentStatus, TournamentState, UpdateMatch


def make_match(match_id, round_id, home, away, sort_order=1, **values):
    match = {
        "id": match_id,
        "round_id": round_id,
        "sort_order": sort_order,
        "home_team_id": home,
        "away_team_id": away,
        "status": "pending",
        "home_score": None,
        "away_score": None,
        "extra_time_home": None,
        "extra_time_away": None,
        "penalties_played": False,
        "penalty_home": None,
        "penalty_away": None,
        "round_label": None,
        "next_match_id": None,
        "next_slot": None,
        "paired_match_id": None,
        "is_first_leg": False,
        "is_second_leg": False,
        "aggregate_home": None,
        "aggregate_away": None,
        "aggregate_winner_id": None,
    }
    match.update(values)
    return match


def finished(match, home, away, **values):
    return {**match, "status": "finished", "home_score": home, "away_score": away, **values}


def make_state(tournament_format, rounds, matches, status="active", config=None, event_counts=None):
    return TournamentState(
        tournament={"id": "t1", "format": tournament_format, "status": status, "config": config or {}},
        rounds={r["id"]: r for r in rounds},
        matches={m["id"]: m for m in matches},
        event_counts=event_counts or {},
    )


def apply(state, plan):
    """Replay a plan on the snapshot the way the storage layer would."""
    rounds = dict(state.rounds)
    matches = dict(state.matches)
    status = state.tournament["status"]
    for write in plan.writes:
        if isinstance(write, CreateRound):
            rounds[write.round_id] = {"id": write.round_id, "number": write.number, "phase_type": write.phase_type}
        elif isinstance(write, CreateMatch):
            new = make_match(write.values["id"], write.values["round_id"], None, None)
            matches[new["id"]] = {**new, **write.values}
        elif isinstance(write, UpdateMatch):
            matches[write.match_id] = {**matches[write.match_id], **write.values}
        elif isinstance(write, SetTournamentStatus):
            status = write.status
    return TournamentState({**state.tournament, "status": status}, rounds, matches, state.event_counts)
