import logging

from app import repository as repo
from app.errors import ConflictError, ValidationError
from app.locks import tournament_lock
from app.services.advancement import goals_from_events
from app.services.cascade import remove_event_with_cascade

logger = logging.getLogger(__name__)

EVENT_TYPES = ("goal", "yellow_card", "red_card", "substitution")


def add_event(
    conn,
    match_id: str,
    team_id: str,
    event_type: str,
    minute: int,
    player_ref: str | None = None,
) -> dict:
    """
    Add a goal/card to a match. Goals re-derive the score: the regular-time
    score is always the goal count minus whatever extra time was recorded.
    """
    if event_type not in EVENT_TYPES:
        raise ValidationError(f"Tipo de evento inválido: {event_type}")
    if minute < 0 or minute > 130:
        raise ValidationError("El minuto debe estar entre 0 y 130.")

    match = repo.get_match(conn, match_id)
    with tournament_lock(conn, match["tournament_id"]):
        match = repo.get_match(conn, match_id)
        if not match["home_team_id"] or not match["away_team_id"]:
            raise ValidationError("Este partido aún no tiene ambos equipos definidos.")
        if team_id not in (match["home_team_id"], match["away_team_id"]):
            raise ValidationError("El equipo no juega este partido.")
        if event_type == "goal" and match["status"] == "finished":
            raise ConflictError("El partido ya finalizó. Para cambiar el marcador usa la reversión en cascada.")

        event = repo.insert_event(conn, match_id, team_id, event_type, minute, player_ref)

        values = {}
        if event_type == "goal":
            home, away = goals_from_events(repo.list_events(conn, match_id), match["home_team_id"], match["away_team_id"])
            values["home_score"] = max(home - int(match["extra_time_home"] or 0), 0)
            values["away_score"] = max(away - int(match["extra_time_away"] or 0), 0)
            if match["status"] == "pending":
                values["status"] = "in_progress"
            repo.update_match(conn, match_id, values)
            logger.info("Gol en %s: %s-%s", match_id, values["home_score"], values["away_score"])

        return {
            "event": event,
            "home_score": values.get("home_score", match["home_score"]),
            "away_score": values.get("away_score", match["away_score"]),
        }


def list_match_events(conn, match_id: str) -> list[dict]:
    repo.get_match(conn, match_id)
    return repo.list_events(conn, match_id)


def remove_event(conn, event_id: str, confirmed: bool = False, expected_match_ids=None) -> dict:
    return remove_event_with_cascade(conn, event_id, confirmed, expected_match_ids)
