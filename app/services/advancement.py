import logging

from sqlalchemy.exc import SQLAlchemyError

from app import repository as repo
from app.core.advancement import (
    AdvancementPlan,
    CreateMatch,
    CreateRound,
    SetTournamentStatus,
    TournamentState,
    UpdateMatch,
    plan_advancement,
)
from app.core.cascade import compute_result_change_impact
from app.core.phases import away_goals_enabled, round_phase_state
from app.core.tiebreak import compute_aggregate, total_goals
from app.errors import ConflictError, ValidationError
from app.locks import tournament_lock

logger = logging.getLogger(__name__)


def apply_plan(conn, tournament_id: str, plan: AdvancementPlan) -> None:
    for write in plan.writes:
        if isinstance(write, CreateRound):
            repo.insert_round(
                conn,
                tournament_id,
                write.number,
                write.phase_name,
                write.phase_type,
                round_id=write.round_id,
            )
        elif isinstance(write, CreateMatch):
            repo.insert_match(conn, write.values)
        elif isinstance(write, UpdateMatch):
            repo.update_match(conn, write.match_id, write.values)
        elif isinstance(write, SetTournamentStatus):
            repo.set_tournament_status(conn, tournament_id, write.status)
            logger.info("Torneo %s -> %s", tournament_id, write.status)
        else:
            raise TypeError(f"Escritura desconocida: {write!r}")


def refresh_round_state(conn, round_id: str) -> str:
    round_row = repo.get_round(conn, round_id)
    statuses = [m["status"] for m in repo.list_matches(conn, round_row["tournament_id"], round_id=round_id)]
    new_state = round_phase_state(statuses, round_row["phase_state"])
    if new_state != round_row["phase_state"]:
        repo.set_round_phase_state(conn, round_id, new_state)
    return new_state


def advance_match(conn, match_id: str) -> AdvancementPlan:
    """
    React to a finished match: decide the winner and move it forward.
    Safe to call more than once; an unchanged bracket produces no writes.
    """
    tournament_id = repo.get_match(conn, match_id)["tournament_id"]
    with tournament_lock(conn, tournament_id):
        try:
            state = repo.load_state(conn, tournament_id)
            plan = plan_advancement(state, match_id)
            apply_plan(conn, tournament_id, plan)
        except SQLAlchemyError:
            logger.exception("Falló el avance del partido %s (torneo %s)", match_id, tournament_id)
            raise

        touched = {state.matches[match_id]["round_id"]}
        for write in plan.writes:
            if isinstance(write, UpdateMatch) and write.match_id in state.matches:
                touched.add(state.matches[write.match_id]["round_id"])
        for round_id in touched:
            refresh_round_state(conn, round_id)

        logger.info(
            "Avance partido %s: %s (ganador=%s, %d escrituras)",
            match_id, plan.outcome, plan.winner_id, len(plan.writes),
        )
        return plan


def result_values(
    home_score: int,
    away_score: int,
    extra_time_home: int | None = None,
    extra_time_away: int | None = None,
    penalty_home: int | None = None,
    penalty_away: int | None = None,
) -> dict:
    penalties = penalty_home is not None or penalty_away is not None
    return {
        "home_score": home_score,
        "away_score": away_score,
        "extra_time_home": extra_time_home,
        "extra_time_away": extra_time_away,
        "penalties_played": penalties,
        "penalty_home": penalty_home if penalties else None,
        "penalty_away": penalty_away if penalties else None,
    }


def goals_from_events(events, home_team_id: str, away_team_id: str) -> tuple[int, int]:
    goals = [e for e in events if e["event_type"] == "goal"]
    return (
        sum(1 for e in goals if e["team_id"] == home_team_id),
        sum(1 for e in goals if e["team_id"] == away_team_id),
    )


def validate_result(conn, state: TournamentState, match: dict, values: dict) -> None:
    """Reject results the engine could not use; raises ValidationError."""
    if not match.get("home_team_id") or not match.get("away_team_id"):
        raise ValidationError("Este partido aún no tiene ambos equipos definidos.")

    for key in ("home_score", "away_score", "extra_time_home", "extra_time_away", "penalty_home", "penalty_away"):
        if values.get(key) is not None and values[key] < 0:
            raise ValidationError("Los marcadores no pueden ser negativos.")

    events = repo.list_events(conn, match["id"])
    if any(e["event_type"] == "goal" for e in events):
        expected = goals_from_events(events, match["home_team_id"], match["away_team_id"])
        given = (
            total_goals(values["home_score"], values.get("extra_time_home")),
            total_goals(values["away_score"], values.get("extra_time_away")),
        )
        if given != expected:
            raise ValidationError(
                f"El marcador ({given[0]}-{given[1]}) no coincide con los goles registrados "
                f"({expected[0]}-{expected[1]}). Modifica los eventos del partido."
            )

    if not values.get("penalties_played"):
        return

    if values.get("penalty_home") is None or values.get("penalty_away") is None:
        raise ValidationError("Faltan los penales de alguno de los equipos.")
    if values["penalty_home"] == values["penalty_away"]:
        raise ValidationError("Una tanda de penales no puede terminar empatada.")

    playoff = state.config.get("playoff") or {}
    if playoff.get("penalties_on_tie") is False:
        raise ValidationError("Este torneo no define los empates por penales.")

    legs = state.legs(match)
    if legs is None:
        home = total_goals(values["home_score"], values.get("extra_time_home"))
        away = total_goals(values["away_score"], values.get("extra_time_away"))
        if home != away:
            raise ValidationError("Solo se registran penales cuando el partido termina empatado.")
        return

    leg1, leg2 = legs
    if match["id"] == leg1["id"]:
        raise ValidationError("Los penales se registran en el partido de vuelta.")
    if leg1.get("status") != "finished":
        raise ValidationError("Primero registra el resultado del partido de ida.")
    aggregate = compute_aggregate(leg1, {**leg2, **values}, away_goals_enabled(state.config))
    if not aggregate.requires_penalties:
        raise ValidationError("El global no está empatado: no corresponden penales.")


def record_match_result(
    conn,
    match_id: str,
    home_score: int,
    away_score: int,
    finalize: bool = True,
    penalty_home: int | None = None,
    penalty_away: int | None = None,
    extra_time_home: int | None = None,
    extra_time_away: int | None = None,
) -> dict:
    tournament_id = repo.get_match(conn, match_id)["tournament_id"]
    with tournament_lock(conn, tournament_id):
        state = repo.load_state(conn, tournament_id)
        match = state.matches[match_id]
        values = result_values(home_score, away_score, extra_time_home, extra_time_away, penalty_home, penalty_away)
        validate_result(conn, state, match, values)
        values["status"] = "finished" if finalize else "in_progress"

        if match["status"] == "finished":
            impact = compute_result_change_impact(state, match_id, **values)
            if impact.affected_matches:
                raise ConflictError(
                    f"El cambio de resultado afecta {len(impact.affected_matches)} partido(s) posteriores. "
                    "Usa la reversión en cascada."
                )

        legs = state.legs(match)
        if legs and not finalize:
            for leg in legs:
                repo.update_match(
                    conn, leg["id"], {"aggregate_home": None, "aggregate_away": None, "aggregate_winner_id": None}
                )

        repo.update_match(conn, match_id, values)
        if not finalize and state.tournament["status"] == "finished":
            repo.set_tournament_status(conn, tournament_id, "active")
        refresh_round_state(conn, match["round_id"])

        plan = advance_match(conn, match_id) if finalize else None
        tournament = repo.get_tournament(conn, tournament_id)
        return {
            "match_id": match_id,
            "status": values["status"],
            "winner_id": plan.winner_id if plan else None,
            "outcome": plan.outcome if plan else "in_progress",
            "tournament_status": tournament["status"],
        }
