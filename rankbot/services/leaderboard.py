"""
Leaderboard service

Serves per-sport rankings through the shared RankingCache. A miss recomputes
the ranking from confirmed matches and rating rows (a sort plus an aggregate)
and stores it for the cache TTL.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from sqlalchemy import select

from rankbot.constants import PaginationConstants
from rankbot.data_models.leaderboard import Leaderboard, LeaderboardEntry
from rankbot.database.models import Match, MatchStatus, Participant, ParticipantRating, Sport
from rankbot.config import Config
from rankbot.services.base import BaseService
from rankbot.services.ranking_cache import RankingCache
from rankbot.utils.exceptions import ValidationError
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)


class LeaderboardService(BaseService):
    """Read-through access to cached per-sport rankings."""
    
    def __init__(self, session_factory, cache: RankingCache):
        super().__init__(session_factory)
        self.cache = cache
    
    async def get_leaderboard(self, sport) -> Leaderboard:
        """Sorted ranking for one sport, from cache when fresh."""
        try:
            sport = Sport.parse(sport)
        except ValueError:
            raise ValidationError(f"Unknown sport: {sport}")
        
        cached = await self.cache.get(sport)
        if cached is not None:
            return cached
        
        generation = await self.cache.generation(sport)
        leaderboard = await self._build_leaderboard(sport)
        await self.cache.set(sport, leaderboard, expected_generation=generation)
        return leaderboard
    
    async def get_page(self, sport, page: int = 1,
                       page_size: int = PaginationConstants.DEFAULT_PAGE_SIZE) -> Tuple[Leaderboard, List[LeaderboardEntry]]:
        """One page of a sport's ranking along with the full leaderboard it came from."""
        if not isinstance(page, int) or page < 1:
            raise ValidationError("Page must be a positive number.")
        if not isinstance(page_size, int) or page_size < 1 or page_size > 50:
            raise ValidationError("Page size must be between 1 and 50.")
        
        leaderboard = await self.get_leaderboard(sport)
        return leaderboard, list(leaderboard.page(page, page_size))
    
    async def _build_leaderboard(self, sport: Sport) -> Leaderboard:
        logger.debug(f"Recomputing {sport.value} leaderboard")
        async with self.get_session() as session:
            rating_result = await session.execute(
                select(ParticipantRating.participant_id, ParticipantRating.rating)
                .where(ParticipantRating.sport == sport)
            )
            ratings: Dict[int, int] = {pid: rating for pid, rating in rating_result.all()}
            
            match_result = await session.execute(
                select(Match.player_a_id, Match.player_b_id, Match.winner_id)
                .where(Match.sport == sport, Match.status == MatchStatus.CONFIRMED)
            )
            wins: Dict[int, int] = defaultdict(int)
            losses: Dict[int, int] = defaultdict(int)
            for player_a_id, player_b_id, winner_id in match_result.all():
                loser_id = player_b_id if winner_id == player_a_id else player_a_id
                wins[winner_id] += 1
                losses[loser_id] += 1
            
            participant_ids = set(ratings) | set(wins) | set(losses)
            names: Dict[int, str] = {}
            if participant_ids:
                participant_result = await session.execute(
                    select(Participant.id, Participant.username, Participant.display_name)
                    .where(Participant.id.in_(participant_ids), Participant.is_banned == False)
                )
                names = {pid: display_name or username
                         for pid, username, display_name in participant_result.all()}
        
        ranked = sorted(
            names,
            key=lambda pid: (-ratings.get(pid, Config.DEFAULT_RATING), -wins[pid], pid)
        )
        entries = tuple(
            LeaderboardEntry(
                rank=index,
                participant_id=pid,
                display_name=names[pid],
                rating=ratings.get(pid, Config.DEFAULT_RATING),
                wins=wins[pid],
                losses=losses[pid],
            )
            for index, pid in enumerate(ranked, start=1)
        )
        
        return Leaderboard(
            sport=sport.value,
            entries=entries,
            generated_at=datetime.now(timezone.utc),
        )
