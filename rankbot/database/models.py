from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text,
    ForeignKey, BigInteger, Enum as SQLEnum, CheckConstraint, Index, text
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any

from rankbot.config import Config

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Sport(Enum):
    TABLE_TENNIS = "table_tennis"
    TABLE_FOOTBALL = "table_football"
    
    @property
    def display_name(self) -> str:
        return self.value.replace('_', ' ').title()
    
    @classmethod
    def parse(cls, value) -> 'Sport':
        """Resolve a sport from an enum member, value or name; raises ValueError if unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for sport in cls:
                if sport.value == normalized or sport.name.lower() == normalized:
                    return sport
        raise ValueError(f"Unknown sport: {value!r}")


class MatchStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DENIED = "denied"
    CANCELLED = "cancelled"
    
    def can_transition_to(self, target: 'MatchStatus') -> bool:
        return target in MATCH_TRANSITIONS[self]
    
    @property
    def is_terminal(self) -> bool:
        return not MATCH_TRANSITIONS[self]


# Only pending matches move. A confirmed match leaves this graph through an
# administrative revert, which deletes the row instead of changing its status.
MATCH_TRANSITIONS: Dict[MatchStatus, frozenset] = {
    MatchStatus.PENDING: frozenset({MatchStatus.CONFIRMED, MatchStatus.DENIED, MatchStatus.CANCELLED}),
    MatchStatus.CONFIRMED: frozenset(),
    MatchStatus.DENIED: frozenset(),
    MatchStatus.CANCELLED: frozenset(),
}


class Participant(Base):
    __tablename__ = 'participants'
    
    id = Column(Integer, primary_key=True)
    discord_id = Column(BigInteger, unique=True, nullable=False, index=True)
    username = Column(String(100), nullable=False)
    display_name = Column(String(100))
    campus = Column(String(100))
    
    # Administration
    is_admin = Column(Boolean, default=False, nullable=False)
    is_banned = Column(Boolean, default=False, nullable=False)
    ban_reason = Column(Text)
    banned_at = Column(DateTime)
    banned_by = Column(Integer, ForeignKey('participants.id'), nullable=True)
    
    # Metadata
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
    
    ratings = relationship(
        "ParticipantRating",
        back_populates="participant",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    
    def get_rating(self, sport: Sport) -> int:
        """Current rating for one sport, falling back to the starting rating."""
        for rating in self.ratings:
            if rating.sport == sport:
                return rating.rating
        return Config.DEFAULT_RATING
    
    @property
    def name(self) -> str:
        return self.display_name or self.username
    
    def __repr__(self):
        return f"<Participant(id={self.id}, username='{self.username}', admin={self.is_admin}, banned={self.is_banned})>"


class ParticipantRating(Base):
    __tablename__ = 'participant_ratings'
    
    participant_id = Column(Integer, ForeignKey('participants.id', ondelete='CASCADE'), primary_key=True)
    sport = Column(SQLEnum(Sport), primary_key=True)
    rating = Column(Integer, nullable=False, default=Config.DEFAULT_RATING)
    highest_rating = Column(Integer, nullable=False, default=Config.DEFAULT_RATING)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
    
    participant = relationship("Participant", back_populates="ratings")
    
    __table_args__ = (
        Index('idx_participant_ratings_sport_rating', 'sport', 'rating'),
    )
    
    def __repr__(self):
        return f"<ParticipantRating(participant_id={self.participant_id}, sport={self.sport.value}, rating={self.rating})>"


class Match(Base):
    """
    A single head-to-head result between player A and player B.
    
    The A/B order only decides which score belongs to whom. pair_low_id and
    pair_high_id hold the same two ids in sorted order so the pending-pair
    index can treat the pair as unordered.
    """
    __tablename__ = 'matches'
    
    id = Column(Integer, primary_key=True)
    sport = Column(SQLEnum(Sport), nullable=False, index=True)
    
    player_a_id = Column(Integer, ForeignKey('participants.id'), nullable=False, index=True)
    player_b_id = Column(Integer, ForeignKey('participants.id'), nullable=False, index=True)
    pair_low_id = Column(Integer, nullable=False)
    pair_high_id = Column(Integer, nullable=False)
    
    player_a_score = Column(Integer, nullable=False)
    player_b_score = Column(Integer, nullable=False)
    winner_id = Column(Integer, ForeignKey('participants.id'), nullable=False)
    
    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING, index=True)
    
    # Rating snapshots, set once on confirmation
    player_a_rating_before = Column(Integer, nullable=True)
    player_a_rating_after = Column(Integer, nullable=True)
    player_a_rating_delta = Column(Integer, nullable=True)
    player_b_rating_before = Column(Integer, nullable=True)
    player_b_rating_after = Column(Integer, nullable=True)
    player_b_rating_delta = Column(Integer, nullable=True)
    
    submitted_by = Column(Integer, ForeignKey('participants.id'), nullable=False)
    
    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    confirmed_at = Column(DateTime, nullable=True)
    denied_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
    
    player_a = relationship("Participant", foreign_keys=[player_a_id], lazy="selectin")
    player_b = relationship("Participant", foreign_keys=[player_b_id], lazy="selectin")
    
    __table_args__ = (
        CheckConstraint('player_a_id != player_b_id', name='ck_matches_distinct_players'),
        CheckConstraint('player_a_score >= 0 AND player_b_score >= 0', name='ck_matches_scores_non_negative'),
        CheckConstraint('player_a_score != player_b_score', name='ck_matches_no_draws'),
        Index(
            'uq_matches_pending_pair',
            'sport', 'pair_low_id', 'pair_high_id',
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'")
        ),
        Index('idx_matches_sport_status', 'sport', 'status'),
    )
    
    @property
    def player_ids(self) -> tuple:
        return (self.player_a_id, self.player_b_id)
    
    def involves(self, participant_id: int) -> bool:
        return participant_id in self.player_ids
    
    def opponent_of(self, participant_id: int) -> Optional[int]:
        if participant_id == self.player_a_id:
            return self.player_b_id
        if participant_id == self.player_b_id:
            return self.player_a_id
        return None
    
    @property
    def loser_id(self) -> int:
        return self.opponent_of(self.winner_id)
    
    def to_audit_dict(self) -> Dict[str, Any]:
        """Full match content for forensic audit entries."""
        def _ts(value):
            if value is None:
                return None
            # SQLite hands DateTime columns back naive; every stored value is UTC
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.isoformat()
        
        return {
            'id': self.id,
            'sport': self.sport.value,
            'status': self.status.value,
            'player_a_id': self.player_a_id,
            'player_b_id': self.player_b_id,
            'player_a_score': self.player_a_score,
            'player_b_score': self.player_b_score,
            'winner_id': self.winner_id,
            'submitted_by': self.submitted_by,
            'player_a_rating_before': self.player_a_rating_before,
            'player_a_rating_after': self.player_a_rating_after,
            'player_a_rating_delta': self.player_a_rating_delta,
            'player_b_rating_before': self.player_b_rating_before,
            'player_b_rating_after': self.player_b_rating_after,
            'player_b_rating_delta': self.player_b_rating_delta,
            'created_at': _ts(self.created_at),
            'confirmed_at': _ts(self.confirmed_at),
        }
    
    def __repr__(self):
        return (f"<Match(id={self.id}, sport={self.sport.value}, "
                f"{self.player_a_id} vs {self.player_b_id}, status={self.status.value})>")


class RatingAdjustment(Base):
    """Append-only record of a manual rating change."""
    __tablename__ = 'rating_adjustments'
    
    id = Column(Integer, primary_key=True)
    participant_id = Column(Integer, ForeignKey('participants.id'), nullable=False, index=True)
    sport = Column(SQLEnum(Sport), nullable=False)
    old_rating = Column(Integer, nullable=False)
    new_rating = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    adjusted_by = Column(Integer, ForeignKey('participants.id'), nullable=False)
    created_at = Column(DateTime, default=utc_now)
    
    def __repr__(self):
        return (f"<RatingAdjustment(participant_id={self.participant_id}, sport={self.sport.value}, "
                f"{self.old_rating}->{self.new_rating})>")


class AdminAuditLog(Base):
    """Append-only record of an administrative action."""
    __tablename__ = 'admin_audit_log'
    
    id = Column(Integer, primary_key=True)
    admin_id = Column(Integer, nullable=False, index=True)
    action_type = Column(String(50), nullable=False, index=True)  # e.g. "revert_match", "adjust_rating"
    target_type = Column(String(50))                               # "match", "participant"
    target_id = Column(Integer)
    details = Column(Text)                                          # JSON
    reason = Column(Text)
    created_at = Column(DateTime, default=utc_now)
    
    def __repr__(self):
        return f"<AdminAuditLog(action={self.action_type}, target={self.target_type}:{self.target_id})>"
