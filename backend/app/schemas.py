from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .scoring.tennis import MatchCompletionPayload, OrientedSet


class SetScore(BaseModel):
    A: int
    B: int


class SetsIn(BaseModel):
    sets: List[SetScore]
    recordedBy: Optional[str] = None


class EventIn(BaseModel):
    type: Literal["POINT", "ACE", "TOGGLE_SERVE", "TICK", "PAUSE", "RESUME"]
    by: Optional[Literal["A", "B"]] = None
    kind: Optional[Literal["REGULAR", "WINNER", "ERROR"]] = None
    seconds: Optional[int] = Field(default=None, ge=0, le=3600)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _validate_side(cls, values):
        if values.type in ("POINT", "ACE") and values.by is None:
            raise ValueError("by is required for POINT and ACE events")
        if values.type != "POINT" and values.kind is not None:
            raise ValueError("kind is only valid for POINT events")
        if values.type != "TICK" and values.seconds is not None:
            raise ValueError("seconds is only valid for TICK events")
        return values

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class LiveMatchCreate(BaseModel):
    playerAId: str = Field(..., min_length=1)
    playerBId: str = Field(..., min_length=1)
    server: Literal["A", "B"] = "A"
    createdBy: Optional[str] = None

    @model_validator(mode="after")
    def _distinct_players(cls, values):
        if values.playerAId == values.playerBId:
            raise ValueError("players must be different")
        return values


class EndMatchIn(BaseModel):
    recordedBy: Optional[str] = None


class OrientedSetIn(BaseModel):
    teamA: int = Field(..., ge=0)
    teamB: int = Field(..., ge=0)
    tiebreakA: Optional[int] = Field(default=None, ge=0)
    tiebreakB: Optional[int] = Field(default=None, ge=0)


class ScoreSummaryIn(BaseModel):
    sets: List[OrientedSetIn]


class MatchCompletionIn(BaseModel):
    matchId: str = Field(..., min_length=1)
    eventId: str = Field(..., min_length=1)
    winnerId: str = Field(..., min_length=1)
    loserId: str = Field(..., min_length=1)
    scoreSummary: ScoreSummaryIn

    def to_payload(self) -> MatchCompletionPayload:
        return MatchCompletionPayload(
            match_id=self.matchId,
            event_id=self.eventId,
            winner_id=self.winnerId,
            loser_id=self.loserId,
            sets=tuple(
                OrientedSet(
                    team_a=s.teamA,
                    team_b=s.teamB,
                    tiebreak_a=s.tiebreakA,
                    tiebreak_b=s.tiebreakB,
                )
                for s in self.scoreSummary.sets
            ),
        )


class RatingUpdateOut(BaseModel):
    winnerNewRating: float
    loserNewRating: float


class LogEntryOut(BaseModel):
    action: str
    timestamp: int


class ScoreboardOut(BaseModel):
    eventId: str
    status: str
    points: Dict[str, int]
    games: Dict[str, int]
    sets: Dict[str, int]
    display: Dict[str, str]
    winProbability: Dict[str, int]
    serving: Literal["A", "B"]
    elapsed: int
    clock: str
    running: bool
    setHistory: List[Dict[str, int]]
    statistics: Dict[str, Dict[str, int]]
    log: List[LogEntryOut]
    complete: bool
    winner: Optional[Literal["A", "B"]] = None


class EndMatchOut(BaseModel):
    payload: Dict[str, Any]
    ratings: Optional[RatingUpdateOut] = None
    ratingError: Optional[str] = None


class EventIdOut(BaseModel):
    id: str
