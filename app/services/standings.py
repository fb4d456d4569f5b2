from app import repository as repo
from app.core.advancement import decide
from app.core.phases import is_elimination_format
from app.core.standings import compute_standings, get_scoring_rule
from app.errors import NotFoundError
from app.services.fixtures import group_standings
from app.settings import DEFAULT_SPORT


def tournament_standings(conn, tournament_id: str, group: str | None = None) -> dict:
    tournament = repo.get_tournament(conn, tournament_id)
    scoring = get_scoring_rule(tournament["config"].get("sport") or DEFAULT_SPORT)

    if group:
        tables = group_standings(conn, tournament)
        if group not in tables:
            raise NotFoundError(f"Grupo {group} no encontrado.")
        return {"tournament_id": tournament_id, "group": group, "items": tables[group]}

    participants = repo.list_participants(conn, tournament_id)
    teams = [{"id": p["team_id"], "name": p["name"]} for p in participants]
    matches = repo.list_matches(conn, tournament_id)
    if tournament["format"] == "groups_then_playoff":
        matches = [m for m in matches if not m["round_label"]]
    return {
        "tournament_id": tournament_id,
        "group": None,
        "score_label": scoring.score_label,
        "items": compute_standings(teams, matches, scoring),
    }


def champion(conn, tournament_id: str) -> dict | None:
    """Winner of a finished tournament, or None while it is still being played."""
    tournament = repo.get_tournament(conn, tournament_id)
    if tournament["status"] != "finished":
        return None

    if not is_elimination_format(tournament["format"]):
        table = tournament_standings(conn, tournament_id)["items"]
        if not table:
            return None
        return {"team_id": table[0]["team_id"], "team_name": table[0]["team_name"]}

    state = repo.load_state(conn, tournament_id)
    finals = [
        m
        for m in state.matches.values()
        if m.get("round_label") and not state.deciding_match(m).get("next_match_id") and not m.get("is_first_leg")
    ]
    if not finals:
        return None
    final = max(finals, key=lambda m: int(m["round_number"]))
    _, winner = decide(state, final)
    if winner is None:
        return None
    names = {p["team_id"]: p["name"] for p in repo.list_participants(conn, tournament_id, approved_only=False)}
    return {"team_id": winner, "team_name": names.get(winner)}
