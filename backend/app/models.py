from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Float,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from .db import Base


class SystemSetting(Base):
    """Rating constants, one row per settings group (``rating_settings``)."""

    __tablename__ = "system_settings"
    id = Column(String, primary_key=True)
    provisional_k_factor = Column(Float, nullable=False, default=40.0)
    established_k_factor = Column(Float, nullable=False, default=24.0)
    initial_rating = Column(Float, nullable=False, default=1200.0)
    matches_for_established = Column(Integer, nullable=False, default=10)
    rating_scale_min = Column(Float, nullable=False, default=100.0)
    rating_scale_max = Column(Float, nullable=False, default=3000.0)


class Profile(Base):
    __tablename__ = "profile"
    id = Column(String, primary_key=True)
    username = Column(String, nullable=True, unique=True)
    full_name = Column(String, nullable=True)
    current_rating = Column(Float, nullable=True)
    matches_played = Column(Integer, nullable=False, default=0)
    rating_status = Column(String, nullable=False, default="Provisional")
    updated_at = Column(DateTime, nullable=True)


class Event(Base):
    __tablename__ = "event"
    id = Column(String, primary_key=True)
    event_type = Column(String, nullable=False, default="match_singles_ranked")
    status = Column(String, nullable=False, default="scheduled")
    created_by = Column(String, ForeignKey("profile.id"), nullable=True)
    winner_id = Column(String, ForeignKey("profile.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    details = Column(JSON, nullable=True)


class EventParticipant(Base):
    __tablename__ = "event_participant"
    id = Column(String, primary_key=True)
    event_id = Column(String, ForeignKey("event.id"), nullable=False)
    profile_id = Column(String, ForeignKey("profile.id"), nullable=False)
    side = Column(String, nullable=False)  # "A" | "B"
    role = Column(String, nullable=False, default="player")

    __table_args__ = (
        UniqueConstraint("event_id", "side", name="uq_event_participant_side"),
    )


class ScoreEvent(Base):
    """Append-only live scoring input for an event."""

    __tablename__ = "score_event"
    id = Column(String, primary_key=True)
    event_id = Column(String, ForeignKey("event.id"), nullable=False)
    seq = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "seq", name="uq_score_event_event_id_seq"),
    )


class MatchScore(Base):
    __tablename__ = "match_score"
    id = Column(String, primary_key=True)
    event_id = Column(String, ForeignKey("event.id"), nullable=False)
    set_number = Column(Integer, nullable=False)
    team_a_score = Column(Integer, nullable=False)
    team_b_score = Column(Integer, nullable=False)
    recorded_by = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class MatchStatistics(Base):
    __tablename__ = "match_statistics"
    id = Column(String, primary_key=True)
    event_id = Column(String, ForeignKey("event.id"), nullable=False)
    player_id = Column(String, ForeignKey("profile.id"), nullable=False)
    aces = Column(Integer, nullable=False, default=0)
    winners = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)
    points_won = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class RankingHistory(Base):
    __tablename__ = "ranking_history"
    id = Column(String, primary_key=True)
    profile_id = Column(String, ForeignKey("profile.id"), nullable=False)
    ranking_type = Column(String, nullable=False, default="singles")
    points = Column(Float, nullable=False)
    points_change = Column(Float, nullable=False)
    calculation_date = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_ranking_history_profile_id", "profile_id"),
    )


class PlayerAchievement(Base):
    __tablename__ = "player_achievement"
    id = Column(String, primary_key=True)
    player_id = Column(String, ForeignKey("profile.id"), nullable=False)
    achievement_type = Column(String, nullable=False)
    achieved_at = Column(DateTime, nullable=False)
    description = Column(Text, nullable=True)
    data = Column(JSON, nullable=True)
