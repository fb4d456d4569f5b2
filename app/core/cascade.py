"""
Impact of changing or deleting already-played matches.

Everything here is a dry run over a TournamentState: it lists what the
destructive step in app/services/cascade.py would reset. The service runs
the same computation again right before executing and refuses when the
result no longer matches what the caller confirmed.
"""
from dataclasses import dataclass, field

from app.core.advancement import TournamentState, decide
from app.core.phases import is_elimination_format
from app.errors import NotFoundError, ValidationError

ENTITY_TYPES = ("match", "round")


@dataclass(frozen=True)
class ChainLink:
    match_id: str
    slot: str


@dataclass
class ImpactReport:
    entity_type: str
    entity_id: str
    old_winner_id: str | None = None
    new_winner_id: str | None = None
    winner_changes: bool = False
    deleted_match_ids: list[str] = field(default_factory=list)
    chain: list[ChainLink] = field(default_factory=list)
    affected_matches: list[dict] = field(default_factory=list)
    total_events: int = 0
    reopens_tournament: bool = False
    reverts_to_pending: bool = False

    @property
    def affected_match_ids(self) -> list[str]:
        return [a["match_id"] for a in self.affected_matches]

    @property
    def message(self) -> str:
        if not self.affected_matches:
            return "No hay partidos afectados."
        n = len(self.affected_matches)
        return (
            f"Se van a reiniciar/eliminar {n} partido(s) y {self.total_events} evento(s). "
            "Esta acción no se puede deshacer."
        )

    def as_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_winner_id": self.old_winner_id,
            "new_winner_id": self.new_winner_id,
            "winner_changes": self.winner_changes,
            "affected_matches": self.affected_matches,
            "total_events": self.total_events,
            "reopens_tournament": self.reopens_tournament,
            "reverts_to_pending": self.reverts_to_pending,
            "message": self.message,
        }


def _other_slot(slot: str) -> str:
    return "away" if slot == "home" else "home"


def downstream_chain(state: TournamentState, match: dict, team_id: str | None) -> list[ChainLink]:
    """
    Follow ``team_id`` forward from the tie ``match`` belongs to.

    Each linked match holding the team is part of the chain (both legs of a
    two-legged tie). When that tie was decided, whoever won it was placed
    further on as a consequence, so the walk continues with that winner.
    """
    chain: list[ChainLink] = []
    seen: set[str] = set()
    current_team = team_id
    source = state.deciding_match(match)

    while current_team and source.get("next_match_id"):
        nxt = state.matches.get(source["next_match_id"])
        if nxt is None or nxt["id"] in seen:
            break
        if nxt.get("home_team_id") == current_team:
            slot = "home"
        elif nxt.get("away_team_id") == current_team:
            slot = "away"
        else:
            break

        seen.add(nxt["id"])
        chain.append(ChainLink(nxt["id"], slot))
        legs = state.legs(nxt)
        if legs:
            other = legs[1] if legs[0]["id"] == nxt["id"] else legs[0]
            if other.get(f"{_other_slot(slot)}_team_id") == current_team:
                seen.add(other["id"])
                chain.append(ChainLink(other["id"], _other_slot(slot)))

        _, current_team = decide(state, nxt)
        source = state.deciding_match(nxt)

    return chain


def _describe(state: TournamentState, match_id: str) -> dict:
    m = state.matches[match_id]
    round_row = state.rounds.get(m["round_id"]) or {}
    return {
        "match_id": match_id,
        "round_id": m["round_id"],
        "round_label": m.get("round_label"),
        "phase_name": round_row.get("phase_name"),
        "home_team_id": m.get("home_team_id"),
        "away_team_id": m.get("away_team_id"),
        "home_score": m.get("home_score"),
        "away_score": m.get("away_score"),
        "status": m.get("status"),
        "events_count": int(state.event_counts.get(match_id, 0)),
    }


def _is_final_tie(state: TournamentState, match: dict) -> bool:
    source = state.deciding_match(match)
    return bool(match.get("round_label")) and not source.get("next_match_id")


def compute_result_change_impact(state: TournamentState, match_id: str, **new_values) -> ImpactReport:
    """
    What changes downstream if ``match_id`` gets ``new_values`` (scores,
    extra time, penalties, optionally a new status; finished by default).
    """
    match = state.matches.get(match_id)
    if match is None:
        raise NotFoundError("Partido no encontrado")

    report = ImpactReport("match", match_id)
    _, old_winner = decide(state, match)
    candidate = state.with_match(match_id, **{"status": "finished", **new_values})
    _, new_winner = decide(candidate, candidate.matches[match_id])
    report.old_winner_id = old_winner
    report.new_winner_id = new_winner

    if old_winner is None or old_winner == new_winner:
        return report

    report.winner_changes = True
    report.chain = downstream_chain(state, match, old_winner)
    for link in report.chain:
        report.affected_matches.append(_describe(state, link.match_id))
    report.total_events = sum(a["events_count"] for a in report.affected_matches)

    if state.tournament.get("status") == "finished":
        report.reopens_tournament = any(_is_final_tie(state, state.matches[link.match_id]) for link in report.chain)
    return report


def compute_delete_impact(state: TournamentState, entity_type: str, entity_id: str) -> ImpactReport:
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(f"Tipo de entidad inválido: {entity_type}")

    if entity_type == "round":
        if entity_id not in state.rounds:
            raise NotFoundError("Jornada no encontrada")
        doomed = [m["id"] for m in state.round_matches(entity_id)]
    else:
        if entity_id not in state.matches:
            raise NotFoundError("Partido no encontrado")
        doomed = [entity_id]

    report = ImpactReport(entity_type, entity_id, deleted_match_ids=list(doomed))
    doomed_set = set(doomed)
    chained: set[str] = set()

    for match_id in doomed:
        match = state.matches[match_id]
        _, winner = decide(state, match)
        if winner is None:
            continue
        for link in downstream_chain(state, match, winner):
            if link.match_id in doomed_set or link.match_id in chained:
                continue
            chained.add(link.match_id)
            report.chain.append(link)

    for match_id in doomed + [link.match_id for link in report.chain]:
        report.affected_matches.append(_describe(state, match_id))
    report.total_events = sum(a["events_count"] for a in report.affected_matches)

    tournament = state.tournament
    report.reverts_to_pending = tournament.get("status") == "active" and is_elimination_format(tournament["format"])
    return report
