"""
Shared pytest fixtures.

Every test gets its own in-memory SQLite database (StaticPool keeps the single
connection alive) with the schema created. The HTTP client fixture points the
routers at that same engine.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app import repository as repo
from app.db import init_schema
from app.services.advancement import record_match_result


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def make_tournament(engine):
    """Create a tournament with ``n_teams`` approved participants."""

    def _make(tournament_format="league", n_teams=4, config=None, seeded=False):
        with engine.begin() as conn:
            tournament_id = repo.create_tournament(conn, "Copa de Prueba", tournament_format, config or {})
            team_ids = []
            for i in range(n_teams):
                team = repo.create_team(conn, f"Equipo {i + 1:02d}")
                repo.add_participant(conn, tournament_id, team["id"], seed=i + 1 if seeded else None)
                team_ids.append(team["id"])
        return tournament_id, team_ids

    return _make


@pytest.fixture
def play(engine):
    """Record a result in its own transaction, as the HTTP layer does."""

    def _play(match_id, home, away, **kwargs):
        with engine.begin() as conn:
            return record_match_result(conn, match_id, home, away, **kwargs)

    return _play


@pytest.fixture
def matches_of(engine):
    """All matches of a tournament, optionally filtered by round label."""

    def _matches(tournament_id, round_label=None):
        with engine.connect() as conn:
            items = repo.list_matches(conn, tournament_id)
        if round_label is not None:
            items = [m for m in items if m["round_label"] == round_label]
        return items

    return _matches


@pytest.fixture
def tournament_row(engine):
    def _get(tournament_id):
        with engine.connect() as conn:
            return repo.get_tournament(conn, tournament_id)

    return _get


@pytest.fixture
def client(engine, monkeypatch):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.routers import tournaments_admin, tournaments_public

    monkeypatch.setattr(tournaments_admin, "engine", engine)
    monkeypatch.setattr(tournaments_public, "engine", engine)
    return TestClient(app)
