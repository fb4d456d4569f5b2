"""
Confirm-then-execute protocol for destructive edits.

``preview_*`` functions only read and return an ImpactReport. The
``execute_*``/``delete_*`` functions require ``confirmed=True``, take the
tournament lock, recompute the impact and, when the caller passes the match
ids it saw in the preview, refuse if that set has moved in between.
"""
import logging

from app import repository as repo
from app.core.advancement import RESET_VALUES
from app.core.cascade import ImpactReport, compute_delete_impact, compute_result_change_impact
from app.errors import ConflictError, ValidationError
from app.locks import tournament_lock
from app.services.advancement import (
    advance_match,
    goals_from_events,
    refresh_round_state,
    result_values,
    validate_result,
)

logger = logging.getLogger(__name__)


def _require_confirmation(confirmed: bool) -> None:
    if not confirmed:
        raise ValidationError("Se requiere confirmación explícita para esta operación.")


def _check_expected(report: ImpactReport, expected_match_ids) -> None:
    if expected_match_ids is None:
        return
    if sorted(expected_match_ids) != sorted(report.affected_match_ids):
        raise ConflictError("El impacto cambió desde la vista previa. Vuelve a revisarlo antes de confirmar.")


def _reset_chain(conn, report: ImpactReport) -> int:
    """Clear every slot the old winner reached, plus scores and events of those matches."""
    for link in report.chain:
        values = {f"{link.slot}_team_id": None}
        values.update(RESET_VALUES)
        repo.update_match(conn, link.match_id, values)
    return repo.delete_events_for_matches(conn, [link.match_id for link in report.chain])


def _tournament_of(conn, entity_type: str, entity_id: str) -> str:
    if entity_type == "round":
        return repo.get_round(conn, entity_id)["tournament_id"]
    if entity_type == "event":
        entity_id = repo.get_event(conn, entity_id)["match_id"]
    return repo.get_match(conn, entity_id)["tournament_id"]


# =========================
# Cambio de resultado
# =========================

def preview_revert_impact(conn, match_id: str, home_score: int, away_score: int, **extra) -> ImpactReport:
    tournament_id = _tournament_of(conn, "match", match_id)
    state = repo.load_state(conn, tournament_id)
    return compute_result_change_impact(state, match_id, **result_values(home_score, away_score, **extra))


def execute_cascade_revert(
    conn,
    match_id: str,
    home_score: int,
    away_score: int,
    confirmed: bool,
    expected_match_ids: list[str] | None = None,
    **extra,
) -> dict:
    _require_confirmation(confirmed)
    tournament_id = _tournament_of(conn, "match", match_id)
    with tournament_lock(conn, tournament_id):
        state = repo.load_state(conn, tournament_id)
        match = state.matches[match_id]
        values = result_values(home_score, away_score, **extra)
        validate_result(conn, state, match, values)

        report = compute_result_change_impact(state, match_id, **values)
        _check_expected(report, expected_match_ids)

        events_deleted = _reset_chain(conn, report)
        legs = state.legs(match)
        for leg in legs or ():
            repo.update_match(
                conn, leg["id"], {"aggregate_home": None, "aggregate_away": None, "aggregate_winner_id": None}
            )
        repo.update_match(conn, match_id, {**values, "status": "finished"})
        if report.reopens_tournament:
            repo.set_tournament_status(conn, tournament_id, "active")

        for round_id in {state.matches[link.match_id]["round_id"] for link in report.chain}:
            refresh_round_state(conn, round_id)
        plan = advance_match(conn, match_id)

        logger.info(
            "Reversión en cascada %s: %d partidos reiniciados, %d eventos eliminados, ganador %s -> %s",
            match_id, len(report.chain), events_deleted, report.old_winner_id, plan.winner_id,
        )
        return {
            "match_id": match_id,
            "reset_match_ids": [link.match_id for link in report.chain],
            "events_deleted": events_deleted,
            "old_winner_id": report.old_winner_id,
            "winner_id": plan.winner_id,
            "tournament_status": repo.get_tournament(conn, tournament_id)["status"],
        }


# =========================
# Eliminación de eventos
# =========================

def _event_removal(conn, state, event: dict) -> tuple[dict, ImpactReport]:
    match = state.matches[event["match_id"]]
    remaining = [e for e in repo.list_events(conn, match["id"]) if e["id"] != event["id"]]
    home, away = goals_from_events(remaining, match["home_team_id"], match["away_team_id"])
    # event-derived goals replace the regular-time score; extra time stays as recorded
    home -= int(match.get("extra_time_home") or 0)
    away -= int(match.get("extra_time_away") or 0)
    values = {"home_score": max(home, 0), "away_score": max(away, 0)}
    if match["status"] != "finished" or event["event_type"] != "goal":
        return values, ImpactReport("event", event["id"])
    report = compute_result_change_impact(state, match["id"], **values)
    report.entity_type = "event"
    report.entity_id = event["id"]
    return values, report


def preview_event_removal_impact(conn, event_id: str) -> ImpactReport:
    event = repo.get_event(conn, event_id)
    state = repo.load_state(conn, _tournament_of(conn, "event", event_id))
    return _event_removal(conn, state, event)[1]


def remove_event_with_cascade(conn, event_id: str, confirmed: bool = False, expected_match_ids=None) -> dict:
    event = repo.get_event(conn, event_id)
    tournament_id = _tournament_of(conn, "event", event_id)
    with tournament_lock(conn, tournament_id):
        state = repo.load_state(conn, tournament_id)
        values, report = _event_removal(conn, state, event)
        if report.affected_matches:
            _require_confirmation(confirmed)
            _check_expected(report, expected_match_ids)

        match = state.matches[event["match_id"]]
        events_deleted = _reset_chain(conn, report)
        repo.delete_event(conn, event_id)
        if event["event_type"] == "goal" and match.get("home_team_id") and match.get("away_team_id"):
            repo.update_match(conn, match["id"], values)
        if report.reopens_tournament:
            repo.set_tournament_status(conn, tournament_id, "active")

        plan = advance_match(conn, match["id"]) if match["status"] == "finished" else None
        return {
            "event_id": event_id,
            "match_id": match["id"],
            "home_score": values["home_score"] if event["event_type"] == "goal" else match["home_score"],
            "away_score": values["away_score"] if event["event_type"] == "goal" else match["away_score"],
            "reset_match_ids": [link.match_id for link in report.chain],
            "events_deleted": events_deleted + 1,
            "winner_id": plan.winner_id if plan else None,
        }


# =========================
# Eliminación de jornadas / partidos
# =========================

def preview_delete_impact(conn, entity_type: str, entity_id: str) -> ImpactReport:
    if entity_type == "event":
        return preview_event_removal_impact(conn, entity_id)
    if entity_type not in ("match", "round"):
        raise ValidationError(f"Tipo de entidad inválido: {entity_type}")
    state = repo.load_state(conn, _tournament_of(conn, entity_type, entity_id))
    return compute_delete_impact(state, entity_type, entity_id)


def _execute_delete(conn, entity_type: str, entity_id: str, confirmed: bool, expected_match_ids) -> dict:
    _require_confirmation(confirmed)
    tournament_id = _tournament_of(conn, entity_type, entity_id)
    with tournament_lock(conn, tournament_id):
        state = repo.load_state(conn, tournament_id)
        report = compute_delete_impact(state, entity_type, entity_id)
        _check_expected(report, expected_match_ids)

        events_deleted = _reset_chain(conn, report)
        events_deleted += sum(int(state.event_counts.get(mid, 0)) for mid in report.deleted_match_ids)
        repo.delete_matches(conn, report.deleted_match_ids)
        if entity_type == "round":
            repo.delete_round(conn, entity_id)

        if report.reverts_to_pending:
            repo.set_tournament_status(conn, tournament_id, "pending")
            logger.warning("Torneo %s vuelve a pendiente por eliminación de %s %s", tournament_id, entity_type, entity_id)

        for round_id in {state.matches[link.match_id]["round_id"] for link in report.chain}:
            refresh_round_state(conn, round_id)

        logger.info(
            "Eliminado %s %s: %d partidos borrados, %d reiniciados, %d eventos",
            entity_type, entity_id, len(report.deleted_match_ids), len(report.chain), events_deleted,
        )
        return {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "deleted_match_ids": report.deleted_match_ids,
            "reset_match_ids": [link.match_id for link in report.chain],
            "events_deleted": events_deleted,
            "tournament_status": repo.get_tournament(conn, tournament_id)["status"],
        }


def delete_round(conn, round_id: str, confirmed: bool, expected_match_ids=None) -> dict:
    return _execute_delete(conn, "round", round_id, confirmed, expected_match_ids)


def delete_match(conn, match_id: str, confirmed: bool, expected_match_ids=None) -> dict:
    return _execute_delete(conn, "match", match_id, confirmed, expected_match_ids)


def delete_all_rounds(conn, tournament_id: str, confirmed: bool) -> dict:
    _require_confirmation(confirmed)
    with tournament_lock(conn, tournament_id):
        repo.get_tournament(conn, tournament_id)
        removed = repo.delete_rounds_for_tournament(conn, tournament_id)
        repo.clear_participant_groups(conn, tournament_id)
        repo.set_tournament_status(conn, tournament_id, "pending")
        logger.warning("Torneo %s: %d jornadas eliminadas, vuelve a pendiente", tournament_id, removed)
        return {"tournament_id": tournament_id, "rounds_deleted": removed, "tournament_status": "pending"}
