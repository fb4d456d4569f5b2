from fastapi import APIRouter, Query

from app import repository as repo
from app.core.tiebreak import format_result
from app.schemas import BracketOut, StandingsOut
from app.services.standings import champion, tournament_standings
from app.settings import engine

router = APIRouter()


def _team_ref(team_by_id: dict, team_id: str | None) -> dict:
    team = team_by_id.get(team_id) if team_id else None
    return {
        "id": team_id if team else None,
        "name": team["name"] if team else "TBD",
        "emoji": team["logo_emoji"] if team else None,
    }


def _match_payload(conn, tournament_id: str) -> list[dict]:
    participants = repo.list_participants(conn, tournament_id, approved_only=False)
    team_by_id = {p["team_id"]: p for p in participants}

    payload = []
    for m in repo.list_matches(conn, tournament_id):
        played = m["status"] != "pending" and m["home_score"] is not None
        payload.append(
            {
                "id": m["id"],
                "round_id": m["round_id"],
                "round_number": int(m["round_number"]),
                "sort_order": int(m["sort_order"]),
                "status": m["status"],
                "home": _team_ref(team_by_id, m["home_team_id"]),
                "away": _team_ref(team_by_id, m["away_team_id"]),
                "home_score": m["home_score"],
                "away_score": m["away_score"],
                "result": format_result(m) if played else None,
                "round_label": m["round_label"],
                "next_match_id": m["next_match_id"],
                "next_slot": m["next_slot"],
                "is_first_leg": m["is_first_leg"],
                "is_second_leg": m["is_second_leg"],
                "paired_match_id": m["paired_match_id"],
                "aggregate_home": m["aggregate_home"],
                "aggregate_away": m["aggregate_away"],
                "aggregate_winner_id": m["aggregate_winner_id"],
            }
        )
    return payload


def _build_rounds(rounds: list[dict], matches: list[dict]) -> list[dict]:
    by_round: dict[str, list[dict]] = {}
    for match in matches:
        by_round.setdefault(match["round_id"], []).append(match)

    return [
        {
            "round_id": r["id"],
            "number": int(r["number"]),
            "phase_name": r["phase_name"],
            "phase_type": r["phase_type"],
            "two_legged": bool(r["two_legged"]),
            "phase_state": r["phase_state"],
            "matches": sorted(by_round.get(r["id"], []), key=lambda m: m["sort_order"]),
        }
        for r in rounds
    ]


@router.get("/tournaments/{tournament_id}")
def get_tournament_detail(tournament_id: str):
    with engine.connect() as conn:
        tournament = repo.get_tournament(conn, tournament_id)
        matches = _match_payload(conn, tournament_id)
        return {
            "tournament": {
                "id": tournament["id"],
                "title": tournament["title"],
                "format": tournament["format"],
                "status": tournament["status"],
                "config": tournament["config"],
                "created_at": str(tournament["created_at"]),
                "updated_at": str(tournament["updated_at"]),
            },
            "participants": repo.list_participants(conn, tournament_id, approved_only=False),
            "rounds": _build_rounds(repo.list_rounds(conn, tournament_id), matches),
            "champion": champion(conn, tournament_id),
        }


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketOut)
def get_bracket(tournament_id: str):
    with engine.connect() as conn:
        repo.get_tournament(conn, tournament_id)
        matches = [m for m in _match_payload(conn, tournament_id) if m["round_label"]]
        round_ids = {m["round_id"] for m in matches}
        rounds = [r for r in repo.list_rounds(conn, tournament_id) if r["id"] in round_ids]
        return {"tournament_id": tournament_id, "rounds": _build_rounds(rounds, matches)}


@router.get("/tournaments/{tournament_id}/standings", response_model=StandingsOut)
def get_standings(tournament_id: str, group: str | None = Query(None, max_length=8)):
    with engine.connect() as conn:
        return tournament_standings(conn, tournament_id, group)


@router.get("/tournaments/{tournament_id}/champion")
def get_champion(tournament_id: str):
    with engine.connect() as conn:
        return {"tournament_id": tournament_id, "champion": champion(conn, tournament_id)}
