from dataclasses import dataclass

COUNTED_STATUSES = ("finished", "in_progress")


@dataclass(frozen=True)
class ScoringRule:
    points_for_win: int
    points_for_draw: int
    points_for_loss: int
    allows_draws: bool
    score_label: str = "Goles"


SCORING_RULES = {
    "futbol": ScoringRule(3, 1, 0, True, "Goles"),
    "volleyball": ScoringRule(3, 0, 0, False, "Sets"),
    "basketball": ScoringRule(2, 0, 0, False, "Puntos"),
    "beisbol": ScoringRule(2, 0, 0, False, "Carreras"),
}

FOOTBALL = SCORING_RULES["futbol"]


def get_scoring_rule(sport: str | None) -> ScoringRule:
    return SCORING_RULES.get((sport or "").lower(), FOOTBALL)


def _shootout_winner(match) -> str | None:
    if not match.get("penalties_played"):
        return None
    ph, pa = match.get("penalty_home"), match.get("penalty_away")
    if ph is None or pa is None or ph == pa:
        return None
    return "home" if ph > pa else "away"


def compute_standings(teams, matches, scoring: ScoringRule = FOOTBALL) -> list[dict]:
    """
    Tabla de posiciones.

    ``teams`` son mappings con ``id`` y ``name``; ``matches`` mappings con
    equipos, marcador, estado y datos de penales. Cada partido finalizado o
    en curso suma una sola vez a ambos equipos. Un empate definido por penales
    cuenta como victoria/derrota.

    Orden: pts desc, dg desc, gf desc, nombre.
    """
    stats = {
        str(t["id"]): {
            "team_id": str(t["id"]),
            "team_name": t["name"],
            "pts": 0,
            "pj": 0,
            "pg": 0,
            "pe": 0,
            "pp": 0,
            "gf": 0,
            "gc": 0,
            "dg": 0,
        }
        for t in teams
    }

    for m in matches:
        if m.get("status") not in COUNTED_STATUSES:
            continue
        if not m.get("home_team_id") or not m.get("away_team_id"):
            continue
        home_id = str(m["home_team_id"])
        away_id = str(m["away_team_id"])
        if home_id not in stats or away_id not in stats:
            continue

        home_goals = int(m.get("home_score") or 0) + int(m.get("extra_time_home") or 0)
        away_goals = int(m.get("away_score") or 0) + int(m.get("extra_time_away") or 0)

        home = stats[home_id]
        away = stats[away_id]

        home["pj"] += 1
        away["pj"] += 1
        home["gf"] += home_goals
        home["gc"] += away_goals
        away["gf"] += away_goals
        away["gc"] += home_goals

        if home_goals > away_goals:
            outcome = "home"
        elif away_goals > home_goals:
            outcome = "away"
        else:
            outcome = _shootout_winner(m)

        if outcome == "home":
            home["pg"] += 1
            away["pp"] += 1
            home["pts"] += scoring.points_for_win
            away["pts"] += scoring.points_for_loss
        elif outcome == "away":
            away["pg"] += 1
            home["pp"] += 1
            away["pts"] += scoring.points_for_win
            home["pts"] += scoring.points_for_loss
        else:
            draw_points = scoring.points_for_draw if scoring.allows_draws else scoring.points_for_loss
            home["pe"] += 1
            away["pe"] += 1
            home["pts"] += draw_points
            away["pts"] += draw_points

    for row in stats.values():
        row["dg"] = row["gf"] - row["gc"]

    return sorted(
        stats.values(),
        key=lambda x: (-x["pts"], -x["dg"], -x["gf"], x["team_name"].lower()),
    )
