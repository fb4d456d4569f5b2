import json
from uuid import uuid4

from sqlalchemy import bindparam, text

from app.core.advancement import TournamentState
from app.errors import NotFoundError, ValidationError

MATCH_COLUMNS = (
    "id",
    "tournament_id",
    "round_id",
    "sort_order",
    "home_team_id",
    "away_team_id",
    "status",
    "home_score",
    "away_score",
    "extra_time_home",
    "extra_time_away",
    "round_label",
    "next_match_id",
    "next_slot",
    "is_first_leg",
    "is_second_leg",
    "paired_match_id",
    "aggregate_home",
    "aggregate_away",
    "aggregate_winner_id",
    "penalties_played",
    "penalty_home",
    "penalty_away",
)

_BOOL_COLUMNS = ("is_first_leg", "is_second_leg", "penalties_played", "two_legged")

_MATCH_SELECT = ", ".join(MATCH_COLUMNS) + ", created_at, updated_at"


def _clean(row) -> dict | None:
    if row is None:
        return None
    data = dict(row)
    for key in _BOOL_COLUMNS:
        if key in data and data[key] is not None:
            data[key] = bool(data[key])
    return data


def _parse_config(raw) -> dict:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return {}


# =========================
# Equipos / torneos
# =========================

def create_team(conn, name: str, logo_emoji: str | None = None) -> dict:
    team_id = str(uuid4())
    conn.execute(
        text(
            """
            INSERT INTO teams (id, name, logo_emoji, created_at)
            VALUES (:id, :name, :logo_emoji, CURRENT_TIMESTAMP)
            """
        ),
        {"id": team_id, "name": name, "logo_emoji": logo_emoji},
    )
    return {"id": team_id, "name": name, "logo_emoji": logo_emoji}


def get_team(conn, team_id: str) -> dict:
    row = conn.execute(
        text("SELECT id, name, logo_emoji FROM teams WHERE id = :id"),
        {"id": team_id},
    ).mappings().first()
    if not row:
        raise NotFoundError("Equipo no encontrado.")
    return dict(row)


def create_tournament(conn, title: str, tournament_format: str, config: dict | None = None) -> str:
    tournament_id = str(uuid4())
    conn.execute(
        text(
            """
            INSERT INTO tournaments (id, title, format, status, config, created_at, updated_at)
            VALUES (:id, :title, :format, 'pending', :config, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
            """
        ),
        {"id": tournament_id, "title": title, "format": tournament_format, "config": json.dumps(config or {})},
    )
    return tournament_id


def get_tournament(conn, tournament_id: str) -> dict:
    row = conn.execute(
        text(
            """
            SELECT id, title, format, status, config, created_at, updated_at
            FROM tournaments
            WHERE id = :tournament_id
            """
        ),
        {"tournament_id": tournament_id},
    ).mappings().first()
    if not row:
        raise NotFoundError("Torneo no encontrado.")
    data = dict(row)
    data["config"] = _parse_config(data["config"])
    return data


def set_tournament_status(conn, tournament_id: str, status: str) -> None:
    conn.execute(
        text("UPDATE tournaments SET status = :status, updated_at = CURRENT_TIMESTAMP WHERE id = :id"),
        {"status": status, "id": tournament_id},
    )


def set_tournament_config(conn, tournament_id: str, config: dict) -> None:
    conn.execute(
        text("UPDATE tournaments SET config = :config, updated_at = CURRENT_TIMESTAMP WHERE id = :id"),
        {"config": json.dumps(config), "id": tournament_id},
    )


def touch_tournament(conn, tournament_id: str) -> None:
    conn.execute(text("UPDATE tournaments SET updated_at = CURRENT_TIMESTAMP WHERE id = :id"), {"id": tournament_id})


# =========================
# Participantes
# =========================

def add_participant(conn, tournament_id: str, team_id: str, status: str = "approved", seed: int | None = None) -> dict:
    existing = conn.execute(
        text("SELECT id FROM tournament_teams WHERE tournament_id = :tid AND team_id = :team_id"),
        {"tid": tournament_id, "team_id": team_id},
    ).mappings().first()
    if existing:
        raise ValidationError("El equipo ya está inscrito en este torneo.")

    participant_id = str(uuid4())
    conn.execute(
        text(
            """
            INSERT INTO tournament_teams (id, tournament_id, team_id, status, seed, created_at)
            VALUES (:id, :tid, :team_id, :status, :seed, CURRENT_TIMESTAMP)
            """
        ),
        {"id": participant_id, "tid": tournament_id, "team_id": team_id, "status": status, "seed": seed},
    )
    return {"id": participant_id, "tournament_id": tournament_id, "team_id": team_id, "status": status, "seed": seed}


def list_participants(conn, tournament_id: str, approved_only: bool = True, by_seed: bool = False) -> list[dict]:
    where = "tt.tournament_id = :tid"
    if approved_only:
        where += " AND tt.status = 'approved'"
    if by_seed:
        order = "CASE WHEN tt.seed IS NULL THEN 1 ELSE 0 END, tt.seed ASC, tt.created_at ASC, tt.id ASC"
    else:
        order = "tt.created_at ASC, tt.id ASC"

    rows = conn.execute(
        text(
            f"""
            SELECT tt.id, tt.team_id, tt.status, tt.seed, tt.group_name,
                   t.name, t.logo_emoji
            FROM tournament_teams tt
            JOIN teams t ON t.id = tt.team_id
            WHERE {where}
            ORDER BY {order}
            """
        ),
        {"tid": tournament_id},
    ).mappings().all()
    return [dict(r) for r in rows]


def set_participant_group(conn, tournament_id: str, team_id: str, group_name: str | None) -> None:
    conn.execute(
        text(
            """
            UPDATE tournament_teams
            SET group_name = :group_name
            WHERE tournament_id = :tid AND team_id = :team_id
            """
        ),
        {"group_name": group_name, "tid": tournament_id, "team_id": team_id},
    )


def clear_participant_groups(conn, tournament_id: str) -> None:
    conn.execute(text("UPDATE tournament_teams SET group_name = NULL WHERE tournament_id = :tid"), {"tid": tournament_id})


# =========================
# Jornadas
# =========================

def count_rounds(conn, tournament_id: str) -> int:
    return int(
        conn.execute(
            text("SELECT COUNT(*) AS cnt FROM rounds WHERE tournament_id = :tid"),
            {"tid": tournament_id},
        ).mappings().first()["cnt"]
    )


def insert_round(
    conn,
    tournament_id: str,
    number: int,
    phase_name: str | None = None,
    phase_type: str | None = None,
    two_legged: bool = False,
    max_matches: int | None = None,
    round_id: str | None = None,
) -> str:
    round_id = round_id or str(uuid4())
    conn.execute(
        text(
            """
            INSERT INTO rounds (
              id, tournament_id, number, phase_name, phase_type,
              two_legged, max_matches, phase_state, created_at
            )
            VALUES (
              :id, :tid, :number, :phase_name, :phase_type,
              :two_legged, :max_matches, 'pending', CURRENT_TIMESTAMP
            )
            """
        ),
        {
            "id": round_id,
            "tid": tournament_id,
            "number": number,
            "phase_name": phase_name,
            "phase_type": phase_type,
            "two_legged": two_legged,
            "max_matches": max_matches,
        },
    )
    return round_id


def get_round(conn, round_id: str) -> dict:
    row = conn.execute(
        text(
            """
            SELECT id, tournament_id, number, phase_name, phase_type,
                   two_legged, max_matches, phase_state, created_at
            FROM rounds
            WHERE id = :id
            """
        ),
        {"id": round_id},
    ).mappings().first()
    if not row:
        raise NotFoundError("Jornada no encontrada.")
    return _clean(row)


def list_rounds(conn, tournament_id: str) -> list[dict]:
    rows = conn.execute(
        text(
            """
            SELECT id, tournament_id, number, phase_name, phase_type,
                   two_legged, max_matches, phase_state, created_at
            FROM rounds
            WHERE tournament_id = :tid
            ORDER BY number ASC
            """
        ),
        {"tid": tournament_id},
    ).mappings().all()
    return [_clean(r) for r in rows]


def set_round_phase_state(conn, round_id: str, phase_state: str) -> None:
    conn.execute(
        text("UPDATE rounds SET phase_state = :state WHERE id = :id"),
        {"state": phase_state, "id": round_id},
    )


# =========================
# Partidos
# =========================

def insert_match(conn, values: dict) -> str:
    data = {"status": "pending", "sort_order": 1}
    data.update(values)
    data.setdefault("id", str(uuid4()))
    unknown = set(data) - set(MATCH_COLUMNS)
    if unknown:
        raise ValueError(f"Columnas desconocidas: {sorted(unknown)}")

    columns = list(data)
    conn.execute(
        text(
            f"""
            INSERT INTO matches ({", ".join(columns)}, created_at, updated_at)
            VALUES ({", ".join(":" + c for c in columns)}, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
            """
        ),
        data,
    )
    return data["id"]


def update_match(conn, match_id: str, values: dict) -> None:
    if not values:
        return
    unknown = set(values) - set(MATCH_COLUMNS)
    if unknown or "id" in values:
        raise ValueError(f"Columnas no actualizables: {sorted(unknown | ({'id'} & set(values)))}")

    set_parts = [f"{k} = :{k}" for k in values]
    set_parts.append("updated_at = CURRENT_TIMESTAMP")
    params = dict(values)
    params["match_id"] = match_id
    conn.execute(
        text(f"UPDATE matches SET {', '.join(set_parts)} WHERE id = :match_id"),
        params,
    )


def get_match(conn, match_id: str) -> dict:
    row = conn.execute(
        text(f"SELECT {_MATCH_SELECT} FROM matches WHERE id = :id"),
        {"id": match_id},
    ).mappings().first()
    if not row:
        raise NotFoundError("Partido no encontrado.")
    return _clean(row)


def list_matches(conn, tournament_id: str, round_id: str | None = None) -> list[dict]:
    where = "m.tournament_id = :tid"
    params = {"tid": tournament_id}
    if round_id:
        where += " AND m.round_id = :round_id"
        params["round_id"] = round_id
    columns = ", ".join(f"m.{c}" for c in MATCH_COLUMNS)
    rows = conn.execute(
        text(
            f"""
            SELECT {columns}, m.created_at, m.updated_at, r.number AS round_number
            FROM matches m
            JOIN rounds r ON r.id = m.round_id
            WHERE {where}
            ORDER BY r.number ASC, m.sort_order ASC, m.id ASC
            """
        ),
        params,
    ).mappings().all()
    return [_clean(r) for r in rows]


def delete_matches(conn, match_ids: list[str]) -> None:
    if not match_ids:
        return
    params = {"ids": list(match_ids)}
    conn.execute(
        text(
            "UPDATE matches SET next_match_id = NULL, next_slot = NULL WHERE next_match_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True)),
        params,
    )
    conn.execute(
        text(
            "UPDATE matches SET paired_match_id = NULL WHERE paired_match_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True)),
        params,
    )
    delete_events_for_matches(conn, match_ids)
    conn.execute(
        text("DELETE FROM matches WHERE id IN :ids").bindparams(bindparam("ids", expanding=True)),
        params,
    )


def delete_round(conn, round_id: str) -> None:
    conn.execute(text("DELETE FROM rounds WHERE id = :id"), {"id": round_id})


def delete_rounds_for_tournament(conn, tournament_id: str) -> int:
    ids = [
        r["id"]
        for r in conn.execute(
            text("SELECT id FROM matches WHERE tournament_id = :tid"),
            {"tid": tournament_id},
        ).mappings().all()
    ]
    delete_matches(conn, ids)
    result = conn.execute(text("DELETE FROM rounds WHERE tournament_id = :tid"), {"tid": tournament_id})
    return result.rowcount or 0


# =========================
# Eventos
# =========================

def insert_event(conn, match_id: str, team_id: str, event_type: str, minute: int, player_ref: str | None = None) -> dict:
    event_id = str(uuid4())
    conn.execute(
        text(
            """
            INSERT INTO match_events (id, match_id, team_id, event_type, minute, player_ref, created_at)
            VALUES (:id, :match_id, :team_id, :event_type, :minute, :player_ref, CURRENT_TIMESTAMP)
            """
        ),
        {
            "id": event_id,
            "match_id": match_id,
            "team_id": team_id,
            "event_type": event_type,
            "minute": minute,
            "player_ref": player_ref,
        },
    )
    return {
        "id": event_id,
        "match_id": match_id,
        "team_id": team_id,
        "event_type": event_type,
        "minute": minute,
        "player_ref": player_ref,
    }


def get_event(conn, event_id: str) -> dict:
    row = conn.execute(
        text("SELECT id, match_id, team_id, event_type, minute, player_ref FROM match_events WHERE id = :id"),
        {"id": event_id},
    ).mappings().first()
    if not row:
        raise NotFoundError("Evento no encontrado.")
    return dict(row)


def list_events(conn, match_id: str) -> list[dict]:
    rows = conn.execute(
        text(
            """
            SELECT id, match_id, team_id, event_type, minute, player_ref
            FROM match_events
            WHERE match_id = :match_id
            ORDER BY minute ASC, created_at ASC, id ASC
            """
        ),
        {"match_id": match_id},
    ).mappings().all()
    return [dict(r) for r in rows]


def delete_event(conn, event_id: str) -> None:
    conn.execute(text("DELETE FROM match_events WHERE id = :id"), {"id": event_id})


def delete_events_for_matches(conn, match_ids: list[str]) -> int:
    if not match_ids:
        return 0
    result = conn.execute(
        text("DELETE FROM match_events WHERE match_id IN :ids").bindparams(bindparam("ids", expanding=True)),
        {"ids": list(match_ids)},
    )
    return result.rowcount or 0


def count_events_by_match(conn, tournament_id: str) -> dict[str, int]:
    rows = conn.execute(
        text(
            """
            SELECT e.match_id, COUNT(*) AS cnt
            FROM match_events e
            JOIN matches m ON m.id = e.match_id
            WHERE m.tournament_id = :tid
            GROUP BY e.match_id
            """
        ),
        {"tid": tournament_id},
    ).mappings().all()
    return {r["match_id"]: int(r["cnt"]) for r in rows}


# =========================
# Snapshot para el motor
# =========================

def load_state(conn, tournament_id: str) -> TournamentState:
    tournament = get_tournament(conn, tournament_id)
    rounds = {r["id"]: r for r in list_rounds(conn, tournament_id)}
    matches = {m["id"]: m for m in list_matches(conn, tournament_id)}
    return TournamentState(
        tournament=tournament,
        rounds=rounds,
        matches=matches,
        event_counts=count_events_by_match(conn, tournament_id),
    )
