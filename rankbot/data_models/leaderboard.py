"""
Leaderboard data models

Immutable data transfer objects handed out by LeaderboardService and held in
the ranking cache.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""
    rank: int
    participant_id: int
    display_name: str
    rating: int
    wins: int
    losses: int
    
    @property
    def matches_played(self) -> int:
        return self.wins + self.losses
    
    @property
    def win_rate(self) -> float:
        """Win percentage over confirmed matches (0.0 - 100.0)."""
        if self.matches_played == 0:
            return 0.0
        return self.wins / self.matches_played * 100


@dataclass(frozen=True)
class Leaderboard:
    """Full sorted ranking for one sport."""
    sport: str
    entries: Tuple[LeaderboardEntry, ...]
    generated_at: datetime
    
    @property
    def total_participants(self) -> int:
        return len(self.entries)
    
    def total_pages(self, page_size: int) -> int:
        return max(1, -(-len(self.entries) // page_size))
    
    def page(self, page: int, page_size: int) -> Tuple[LeaderboardEntry, ...]:
        start = (page - 1) * page_size
        return self.entries[start:start + page_size]
    
    def entry_for(self, participant_id: int) -> Optional[LeaderboardEntry]:
        for entry in self.entries:
            if entry.participant_id == participant_id:
                return entry
        return None


@dataclass(frozen=True)
class ParticipantSportStats:
    """One participant's standing in one sport."""
    participant_id: int
    sport: str
    rating: int
    wins: int
    losses: int
    pending: int
    
    @property
    def matches_played(self) -> int:
        return self.wins + self.losses
    
    @property
    def win_rate(self) -> float:
        if self.matches_played == 0:
            return 0.0
        return self.wins / self.matches_played * 100
