from app.core.pairing import ROUND_FINAL, ROUND_QUARTERFINAL, ROUND_SEMIFINAL
from app.errors import ValidationError

PHASE_GROUP = "group"
PHASE_FINAL = "final"

ELIMINATION_FORMATS = ("single_elimination", "groups_then_playoff")

_PHASE_NAMES = {
    "group": "Fase de Grupos",
    "round_of_64": "32avos de Final",
    "round_of_32": "16avos de Final",
    "round_of_16": "Octavos de Final",
    "quarterfinals": "Cuartos de Final",
    "semifinals": "Semifinales",
    "final": "Final",
}


def phase_type_for(label: str, matches_in_round: int) -> str:
    if label == ROUND_FINAL:
        return PHASE_FINAL
    if label == ROUND_SEMIFINAL:
        return "semifinals"
    if label == ROUND_QUARTERFINAL:
        return "quarterfinals"
    return f"round_of_{matches_in_round * 2}"


def phase_name(phase_type: str | None) -> str:
    return _PHASE_NAMES.get(phase_type or "", phase_type or "Fase")


def uses_two_legs(config: dict, phase_type: str) -> bool:
    """
    Whether a playoff phase is played home and away, from
    ``config["playoff"]``: ``two_legged`` switches the feature on,
    ``two_legged_phases`` lists phase types and ``final_two_legged`` covers
    the final.
    """
    playoff = (config or {}).get("playoff") or {}
    if not playoff.get("two_legged"):
        return False
    if phase_type == PHASE_FINAL:
        return bool(playoff.get("final_two_legged"))
    return phase_type in (playoff.get("two_legged_phases") or [])


def away_goals_enabled(config: dict) -> bool:
    return bool(((config or {}).get("playoff") or {}).get("away_goals"))


def is_elimination_format(tournament_format: str) -> bool:
    return tournament_format in ELIMINATION_FORMATS


def round_phase_state(statuses: list[str], current: str | None = None) -> str:
    if current == "locked":
        return "locked"
    if not statuses:
        return "pending"
    if all(s == "finished" for s in statuses):
        return "completed"
    if any(s in ("in_progress", "finished") for s in statuses):
        return "in_progress"
    return "pending"


def has_duplicate_pairing(matches, team_a: str, team_b: str, exclude_match_id: str | None = None) -> bool:
    """True when A-B or B-A is already scheduled among ``matches``."""
    pair = {team_a, team_b}
    for m in matches:
        if exclude_match_id and m["id"] == exclude_match_id:
            continue
        if {m.get("home_team_id"), m.get("away_team_id")} == pair:
            return True
    return False


def can_generate_matches(round_row, round_matches) -> None:
    """Raise ValidationError when no more matches may be added to the round."""
    state = round_row.get("phase_state")
    if state == "completed":
        raise ValidationError("La fase ya está completada.")
    if state == "locked":
        raise ValidationError("La fase está bloqueada por un administrador.")

    cap = round_row.get("max_matches")
    if cap is not None and len(round_matches) >= int(cap):
        raise ValidationError(f"Límite de partidos alcanzado ({len(round_matches)}/{cap}).")

    if round_row.get("two_legged"):
        has_first = any(m.get("is_first_leg") for m in round_matches)
        has_second = any(m.get("is_second_leg") for m in round_matches)
        if has_first and has_second:
            raise ValidationError("Los partidos de ida y vuelta ya fueron generados.")
