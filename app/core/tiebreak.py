"""
Tiebreak resolution for elimination matches.

Single match: score (regular + extra time), then penalties.
Two-legged tie: aggregate, then away goals when the rule is on, then the
shootout played at the end of the second leg.
"""
from dataclasses import dataclass

from app.errors import ValidationError


@dataclass(frozen=True)
class AggregateResult:
    # Seen from the first leg: "home" is the team that hosted leg 1.
    home_team_id: str | None
    away_team_id: str | None
    home: int
    away: int
    winner_id: str | None
    requires_penalties: bool
    used_away_goals: bool = False


def total_goals(regular, extra) -> int:
    return int(regular or 0) + int(extra or 0)


def compute_aggregate(leg1, leg2, away_goals_rule: bool = False) -> AggregateResult:
    """
    Leg 2 is played with sides reversed, so the leg-1 home team's goals in
    leg 2 are ``leg2.away_score``.

    Example: A hosts leg 1 and wins 2-1, B hosts leg 2 and wins 1-0.
    Aggregate 2-2; A scored 0 away, B scored 1 away, so with the away goals
    rule B goes through.
    """
    team_a = leg1.get("home_team_id")
    team_b = leg1.get("away_team_id")

    a_leg1 = total_goals(leg1.get("home_score"), leg1.get("extra_time_home"))
    b_leg1 = total_goals(leg1.get("away_score"), leg1.get("extra_time_away"))
    b_leg2 = total_goals(leg2.get("home_score"), leg2.get("extra_time_home"))
    a_leg2 = total_goals(leg2.get("away_score"), leg2.get("extra_time_away"))

    home_agg = a_leg1 + a_leg2
    away_agg = b_leg1 + b_leg2

    if home_agg != away_agg:
        winner = team_a if home_agg > away_agg else team_b
        return AggregateResult(team_a, team_b, home_agg, away_agg, winner, False)

    if away_goals_rule:
        a_away_goals = a_leg2
        b_away_goals = b_leg1
        if a_away_goals != b_away_goals:
            winner = team_a if a_away_goals > b_away_goals else team_b
            return AggregateResult(team_a, team_b, home_agg, away_agg, winner, False, used_away_goals=True)

    return AggregateResult(team_a, team_b, home_agg, away_agg, None, True)


def _validate_shootout(penalty_home, penalty_away) -> None:
    if penalty_home is None or penalty_away is None:
        raise ValidationError("Faltan los penales de alguno de los equipos.")
    if penalty_home < 0 or penalty_away < 0:
        raise ValidationError("Los penales no pueden ser negativos.")
    if penalty_home == penalty_away:
        raise ValidationError("Una tanda de penales no puede terminar empatada.")


def resolve_winner_with_penalties(aggregate: AggregateResult, penalty_home: int, penalty_away: int) -> str | None:
    """
    Penalty scores are given from the leg-1 perspective (``penalty_home`` is
    the shootout score of the team that hosted leg 1). An aggregate that is
    already decided keeps its winner.
    """
    _validate_shootout(penalty_home, penalty_away)
    if not aggregate.requires_penalties:
        return aggregate.winner_id
    return aggregate.home_team_id if penalty_home > penalty_away else aggregate.away_team_id


def shootout_is_complete(match) -> bool:
    return (
        bool(match.get("penalties_played"))
        and match.get("penalty_home") is not None
        and match.get("penalty_away") is not None
        and match.get("penalty_home") != match.get("penalty_away")
    )


def single_match_winner(match) -> str | None:
    """Winner of a stand-alone match, or None while it is still undecided."""
    home = total_goals(match.get("home_score"), match.get("extra_time_home"))
    away = total_goals(match.get("away_score"), match.get("extra_time_away"))
    if home > away:
        return match.get("home_team_id")
    if away > home:
        return match.get("away_team_id")
    if shootout_is_complete(match):
        if match["penalty_home"] > match["penalty_away"]:
            return match.get("home_team_id")
        return match.get("away_team_id")
    return None


def two_legged_winner(leg1, leg2, away_goals_rule: bool = False) -> tuple[AggregateResult, str | None]:
    """Aggregate plus the winner once the second leg's shootout is counted."""
    aggregate = compute_aggregate(leg1, leg2, away_goals_rule)
    if aggregate.winner_id is not None:
        return aggregate, aggregate.winner_id
    if shootout_is_complete(leg2):
        # leg 2 hosts the leg-1 away team
        return aggregate, resolve_winner_with_penalties(aggregate, leg2["penalty_away"], leg2["penalty_home"])
    return aggregate, None


def format_result(match) -> str:
    """'2-1', '1-1 (1-0 TE)', '1-1 (4-3 Pen)'."""
    parts = [f"{match.get('home_score') or 0}-{match.get('away_score') or 0}"]
    if match.get("extra_time_home") is not None or match.get("extra_time_away") is not None:
        parts.append(f"{match.get('extra_time_home') or 0}-{match.get('extra_time_away') or 0} TE")
    if shootout_is_complete(match):
        parts.append(f"{match['penalty_home']}-{match['penalty_away']} Pen")
    if len(parts) == 1:
        return parts[0]
    return f"{parts[0]} ({', '.join(parts[1:])})"
