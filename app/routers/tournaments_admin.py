from fastapi import APIRouter, Query

from app import repository as repo
from app.errors import NotFoundError
from app.locks import tournament_transaction
from app.schemas import (
    CascadeRevertRequest,
    FixtureOut,
    GroupsPhaseRequest,
    ImpactReportOut,
    LeagueFixtureRequest,
    MatchCreateRequest,
    MatchEventCreateRequest,
    MatchResultRequest,
    ParticipantCreateRequest,
    SingleEliminationFixtureRequest,
    TeamCreateRequest,
    TournamentCreateRequest,
)
from app.services import cascade, events, fixtures
from app.services.advancement import advance_match, record_match_result
from app.settings import engine

router = APIRouter()


def _tournament_of(kind: str, entity_id: str) -> str:
    with engine.connect() as conn:
        if kind == "round":
            return repo.get_round(conn, entity_id)["tournament_id"]
        return repo.get_match(conn, entity_id)["tournament_id"]


# =========================
# Equipos / torneos / inscripciones
# =========================

@router.post("/teams")
def create_team(body: TeamCreateRequest):
    with engine.begin() as conn:
        return repo.create_team(conn, body.name.strip(), body.logo_emoji)


@router.post("/tournaments")
def create_tournament(body: TournamentCreateRequest):
    with engine.begin() as conn:
        tournament_id = repo.create_tournament(conn, body.title.strip(), body.format, body.config.model_dump())
        tournament = repo.get_tournament(conn, tournament_id)
        return {
            "id": tournament["id"],
            "title": tournament["title"],
            "format": tournament["format"],
            "status": tournament["status"],
            "config": tournament["config"],
        }


@router.post("/tournaments/{tournament_id}/participants")
def add_participant(tournament_id: str, body: ParticipantCreateRequest):
    with tournament_transaction(engine, tournament_id) as conn:
        repo.get_tournament(conn, tournament_id)
        repo.get_team(conn, body.team_id)
        return repo.add_participant(conn, tournament_id, body.team_id, body.status, body.seed)


@router.get("/tournaments/{tournament_id}/participants")
def list_participants(tournament_id: str, approved_only: bool = False):
    with engine.connect() as conn:
        repo.get_tournament(conn, tournament_id)
        items = repo.list_participants(conn, tournament_id, approved_only=approved_only)
        return {"items": items, "count": len(items)}


# =========================
# Fixture
# =========================

@router.post("/tournaments/{tournament_id}/fixture/league", response_model=FixtureOut, response_model_exclude_none=True)
def generate_league(tournament_id: str, body: LeagueFixtureRequest | None = None):
    body = body or LeagueFixtureRequest()
    with tournament_transaction(engine, tournament_id) as conn:
        return fixtures.generate_league_fixture(conn, tournament_id, body.double_round)


@router.post("/tournaments/{tournament_id}/fixture/single-elimination", response_model=FixtureOut, response_model_exclude_none=True)
def generate_single_elimination(tournament_id: str, body: SingleEliminationFixtureRequest | None = None):
    body = body or SingleEliminationFixtureRequest()
    with tournament_transaction(engine, tournament_id) as conn:
        return fixtures.generate_single_elimination_fixture(conn, tournament_id, body.use_seeding)


@router.post("/tournaments/{tournament_id}/fixture/groups", response_model=FixtureOut, response_model_exclude_none=True)
def generate_groups(tournament_id: str, body: GroupsPhaseRequest):
    with tournament_transaction(engine, tournament_id) as conn:
        return fixtures.generate_groups_phase(
            conn,
            tournament_id,
            body.num_groups,
            body.qualifiers_per_group,
            body.double_round,
            body.custom_assignments,
        )


@router.post("/tournaments/{tournament_id}/fixture/playoff", response_model=FixtureOut, response_model_exclude_none=True)
def generate_playoff(tournament_id: str):
    with tournament_transaction(engine, tournament_id) as conn:
        return fixtures.generate_playoff_from_groups(conn, tournament_id)


@router.delete("/tournaments/{tournament_id}/rounds")
def delete_all_rounds(tournament_id: str, confirmed: bool = Query(False)):
    with tournament_transaction(engine, tournament_id) as conn:
        return cascade.delete_all_rounds(conn, tournament_id, confirmed)


@router.post("/rounds/{round_id}/matches")
def add_match(round_id: str, body: MatchCreateRequest):
    with tournament_transaction(engine, _tournament_of("round", round_id)) as conn:
        match_id = fixtures.add_match_to_round(conn, round_id, body.home_team_id, body.away_team_id)
        return {"match_id": match_id, "round_id": round_id}


# =========================
# Resultados
# =========================

@router.post("/matches/{match_id}/result")
def post_result(match_id: str, body: MatchResultRequest):
    with tournament_transaction(engine, _tournament_of("match", match_id)) as conn:
        return record_match_result(
            conn,
            match_id,
            body.home_score,
            body.away_score,
            finalize=body.finalize,
            **body.extra(),
        )


@router.post("/matches/{match_id}/advance")
def post_advance(match_id: str):
    with tournament_transaction(engine, _tournament_of("match", match_id)) as conn:
        plan = advance_match(conn, match_id)
        return {"match_id": match_id, "outcome": plan.outcome, "winner_id": plan.winner_id, "writes": len(plan.writes)}


@router.post("/matches/{match_id}/revert")
def post_revert(match_id: str, body: CascadeRevertRequest):
    with tournament_transaction(engine, _tournament_of("match", match_id)) as conn:
        return cascade.execute_cascade_revert(
            conn,
            match_id,
            body.home_score,
            body.away_score,
            body.confirmed,
            body.expected_match_ids,
            **body.extra(),
        )


@router.get("/matches/{match_id}/revert-impact", response_model=ImpactReportOut)
def get_revert_impact(
    match_id: str,
    home_score: int = Query(..., ge=0),
    away_score: int = Query(..., ge=0),
    penalty_home: int | None = Query(None, ge=0),
    penalty_away: int | None = Query(None, ge=0),
):
    with engine.connect() as conn:
        report = cascade.preview_revert_impact(
            conn, match_id, home_score, away_score, penalty_home=penalty_home, penalty_away=penalty_away
        )
        return report.as_dict()


# =========================
# Eventos
# =========================

@router.post("/matches/{match_id}/events")
def post_event(match_id: str, body: MatchEventCreateRequest):
    with tournament_transaction(engine, _tournament_of("match", match_id)) as conn:
        return events.add_event(conn, match_id, body.team_id, body.event_type, body.minute, body.player_ref)


@router.get("/matches/{match_id}/events")
def get_events(match_id: str):
    with engine.connect() as conn:
        items = events.list_match_events(conn, match_id)
        return {"items": items, "count": len(items)}


@router.delete("/matches/{match_id}/events/{event_id}")
def delete_event(match_id: str, event_id: str, confirmed: bool = Query(False)):
    with tournament_transaction(engine, _tournament_of("match", match_id)) as conn:
        event = repo.get_event(conn, event_id)
        if event["match_id"] != match_id:
            raise NotFoundError("Evento no encontrado.")
        return events.remove_event(conn, event_id, confirmed)


# =========================
# Impacto / eliminación
# =========================

@router.get("/impact/{entity_type}/{entity_id}", response_model=ImpactReportOut)
def get_impact(entity_type: str, entity_id: str):
    with engine.connect() as conn:
        return cascade.preview_delete_impact(conn, entity_type, entity_id).as_dict()


@router.delete("/rounds/{round_id}")
def delete_round(round_id: str, confirmed: bool = Query(False)):
    with tournament_transaction(engine, _tournament_of("round", round_id)) as conn:
        return cascade.delete_round(conn, round_id, confirmed)


@router.delete("/matches/{match_id}")
def delete_match(match_id: str, confirmed: bool = Query(False)):
    with tournament_transaction(engine, _tournament_of("match", match_id)) as conn:
        return cascade.delete_match(conn, match_id, confirmed)
