"""
Esquema relacional del motor de torneos.

Las tablas se declaran con SQLAlchemy Core solo para poder crearlas
(`init_schema`); todas las lecturas y escrituras van por `text()` en
app/repository.py y funcionan igual en PostgreSQL y en SQLite.
"""
import sqlite3

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

teams = Table(
    "teams",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(80), nullable=False),
    Column("logo_emoji", String(8), nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

tournaments = Table(
    "tournaments",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(160), nullable=False),
    # league | single_elimination | groups_then_playoff
    Column("format", String(32), nullable=False),
    # pending | active | finished | cancelled
    Column("status", String(16), nullable=False, server_default="pending"),
    Column("config", Text, nullable=False, server_default="{}"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

tournament_teams = Table(
    "tournament_teams",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("tournament_id", String(36), ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False),
    Column("team_id", String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
    # approved | pending
    Column("status", String(16), nullable=False, server_default="approved"),
    Column("seed", Integer, nullable=True),
    Column("group_name", String(8), nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("tournament_id", "team_id", name="uq_tournament_team"),
)

rounds = Table(
    "rounds",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("tournament_id", String(36), ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False),
    Column("number", Integer, nullable=False),
    Column("phase_name", String(80), nullable=True),
    # group | round_of_16 | quarterfinals | semifinals | final | ...
    Column("phase_type", String(32), nullable=True),
    Column("two_legged", Boolean, nullable=False, server_default="0"),
    Column("max_matches", Integer, nullable=True),
    # pending | in_progress | completed | locked
    Column("phase_state", String(16), nullable=False, server_default="pending"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

matches = Table(
    "matches",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("tournament_id", String(36), ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False),
    Column("round_id", String(36), ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False),
    Column("sort_order", Integer, nullable=False, server_default="1"),
    Column("home_team_id", String(36), ForeignKey("teams.id"), nullable=True),
    Column("away_team_id", String(36), ForeignKey("teams.id"), nullable=True),
    # pending | in_progress | finished
    Column("status", String(16), nullable=False, server_default="pending"),
    Column("home_score", Integer, nullable=True),
    Column("away_score", Integer, nullable=True),
    Column("extra_time_home", Integer, nullable=True),
    Column("extra_time_away", Integer, nullable=True),
    # R1, R2, ..., Quarterfinal, Semifinal, Final; NULL en liga / fase de grupos
    Column("round_label", String(16), nullable=True),
    Column("next_match_id", String(36), ForeignKey("matches.id", ondelete="SET NULL"), nullable=True),
    # home | away
    Column("next_slot", String(8), nullable=True),
    Column("is_first_leg", Boolean, nullable=False, server_default="0"),
    Column("is_second_leg", Boolean, nullable=False, server_default="0"),
    Column("paired_match_id", String(36), ForeignKey("matches.id", ondelete="SET NULL"), nullable=True),
    Column("aggregate_home", Integer, nullable=True),
    Column("aggregate_away", Integer, nullable=True),
    Column("aggregate_winner_id", String(36), nullable=True),
    Column("penalties_played", Boolean, nullable=False, server_default="0"),
    Column("penalty_home", Integer, nullable=True),
    Column("penalty_away", Integer, nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

match_events = Table(
    "match_events",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("match_id", String(36), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False),
    Column("team_id", String(36), ForeignKey("teams.id"), nullable=False),
    # goal | yellow_card | red_card | substitution
    Column("event_type", String(16), nullable=False),
    Column("minute", Integer, nullable=False),
    Column("player_ref", String(60), nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_schema(engine) -> None:
    metadata.create_all(engine)
