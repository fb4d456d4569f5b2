from typing import Literal

from pydantic import BaseModel, Field, model_validator


# ========== TOURNAMENTS ==========
TournamentStatus = Literal["pending", "active", "finished", "cancelled"]
TournamentFormat = Literal["league", "single_elimination", "groups_then_playoff"]
MatchStatus = Literal["pending", "in_progress", "finished"]
ParticipantStatus = Literal["approved", "pending"]
EventType = Literal["goal", "yellow_card", "red_card", "substitution"]
PhaseType = Literal["round_of_64", "round_of_32", "round_of_16", "quarterfinals", "semifinals", "final"]
Sport = Literal["futbol", "volleyball", "basketball", "beisbol"]


class PlayoffConfig(BaseModel):
    two_legged: bool = False
    two_legged_phases: list[PhaseType] = Field(default_factory=list)
    final_two_legged: bool = False
    away_goals: bool = False
    penalties_on_tie: bool = True


class TournamentConfig(BaseModel):
    double_round: bool = False
    use_seeding: bool = False
    allow_byes: bool = False
    num_groups: int | None = Field(default=None, ge=2, le=8)
    qualifiers_per_group: int | None = Field(default=None, ge=1, le=4)
    sport: Sport | None = None
    playoff: PlayoffConfig = Field(default_factory=PlayoffConfig)


class TournamentCreateRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=160)
    format: TournamentFormat = "league"
    config: TournamentConfig = Field(default_factory=TournamentConfig)


class TeamCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=80)
    logo_emoji: str | None = Field(default=None, max_length=8)


class ParticipantCreateRequest(BaseModel):
    team_id: str
    status: ParticipantStatus = "approved"
    seed: int | None = Field(default=None, ge=1)


# ========== FIXTURE ==========
class LeagueFixtureRequest(BaseModel):
    double_round: bool | None = None


class SingleEliminationFixtureRequest(BaseModel):
    use_seeding: bool | None = None


class GroupsPhaseRequest(BaseModel):
    num_groups: int = Field(..., ge=2, le=8)
    qualifiers_per_group: int = Field(..., ge=1, le=4)
    double_round: bool = False
    custom_assignments: dict[str, list[str]] | None = Field(
        default=None,
        description="Asignación manual opcional: {'A': [team_id, ...], 'B': [...]}",
    )


class FixtureOut(BaseModel):
    rounds_created: int
    matches_created: int
    groups: dict[str, list[str]] | None = None
    qualifiers: list[str] | None = None


# ========== RESULTS ==========
class MatchResultRequest(BaseModel):
    home_score: int = Field(..., ge=0)
    away_score: int = Field(..., ge=0)
    finalize: bool = True
    extra_time_home: int | None = Field(default=None, ge=0)
    extra_time_away: int | None = Field(default=None, ge=0)
    penalty_home: int | None = Field(default=None, ge=0)
    penalty_away: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_pairs(self):
        if (self.extra_time_home is None) != (self.extra_time_away is None):
            raise ValueError("El tiempo extra requiere el marcador de ambos equipos.")
        if (self.penalty_home is None) != (self.penalty_away is None):
            raise ValueError("Los penales requieren el marcador de ambos equipos.")
        return self

    def extra(self) -> dict:
        return {
            "extra_time_home": self.extra_time_home,
            "extra_time_away": self.extra_time_away,
            "penalty_home": self.penalty_home,
            "penalty_away": self.penalty_away,
        }


class CascadeRevertRequest(MatchResultRequest):
    confirmed: bool = False
    expected_match_ids: list[str] | None = Field(
        default=None,
        description="Partidos afectados que mostró la vista previa; si cambiaron se rechaza.",
    )


class MatchCreateRequest(BaseModel):
    home_team_id: str
    away_team_id: str

    @model_validator(mode="after")
    def validate_teams(self):
        if self.home_team_id == self.away_team_id:
            raise ValueError("Un equipo no puede jugar contra sí mismo.")
        return self


# ========== EVENTS ==========
class MatchEventCreateRequest(BaseModel):
    team_id: str
    event_type: EventType = "goal"
    minute: int = Field(..., ge=0, le=130)
    player_ref: str | None = Field(default=None, max_length=60)


# ========== READ MODELS ==========
class MatchTeamRef(BaseModel):
    id: str | None
    name: str
    emoji: str | None


class MatchOut(BaseModel):
    id: str
    round_id: str
    round_number: int
    sort_order: int
    status: MatchStatus
    home: MatchTeamRef
    away: MatchTeamRef
    home_score: int | None
    away_score: int | None
    result: str | None
    round_label: str | None = None
    next_match_id: str | None = None
    next_slot: Literal["home", "away"] | None = None
    is_first_leg: bool = False
    is_second_leg: bool = False
    paired_match_id: str | None = None
    aggregate_home: int | None = None
    aggregate_away: int | None = None
    aggregate_winner_id: str | None = None


class StandingRow(BaseModel):
    team_id: str
    team_name: str
    pts: int
    pj: int
    pg: int
    pe: int
    pp: int
    gf: int
    gc: int
    dg: int


class StandingsOut(BaseModel):
    tournament_id: str
    group: str | None
    score_label: str | None = None
    items: list[StandingRow]


class BracketRound(BaseModel):
    round_id: str
    number: int
    phase_name: str | None
    phase_type: str | None
    two_legged: bool
    phase_state: str
    matches: list[MatchOut]


class BracketOut(BaseModel):
    tournament_id: str
    rounds: list[BracketRound]


class AffectedMatchOut(BaseModel):
    match_id: str
    round_id: str
    round_label: str | None
    phase_name: str | None
    home_team_id: str | None
    away_team_id: str | None
    home_score: int | None
    away_score: int | None
    status: MatchStatus
    events_count: int


class ImpactReportOut(BaseModel):
    entity_type: str
    entity_id: str
    old_winner_id: str | None
    new_winner_id: str | None
    winner_changes: bool
    affected_matches: list[AffectedMatchOut]
    total_events: int
    reopens_tournament: bool
    reverts_to_pending: bool
    message: str
