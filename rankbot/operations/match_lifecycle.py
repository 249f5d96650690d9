"""
Match Lifecycle Module

Owns the match state machine:

    pending -> confirmed   (opponent confirms, ratings move)
    pending -> denied      (opponent rejects, nothing else changes)
    pending -> cancelled   (submitter withdraws)

Every request is validated in full before anything is written. The status
change and, on confirmation, both rating updates are committed together by
MatchStore.apply(); the ranking cache for the sport is invalidated only after
that write has committed.
"""

from typing import List, Optional

from rankbot.config import Config
from rankbot.constants import PaginationConstants
from rankbot.data_models.leaderboard import ParticipantSportStats
from rankbot.database.match_store import MatchStore
from rankbot.database.models import Match, MatchStatus, Participant, Sport
from rankbot.services.ranking_cache import RankingCache
from rankbot.utils.elo import EloCalculator
from rankbot.utils.exceptions import (
    ConflictError, NotFoundError, PermissionDeniedError, ValidationError
)
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)


def parse_sport(value) -> Sport:
    try:
        return Sport.parse(value)
    except ValueError:
        choices = ", ".join(s.value for s in Sport)
        raise ValidationError(f"Unknown sport '{value}'. Choose one of: {choices}.")


def _validate_score(label: str, score) -> int:
    # bool is an int subclass; True/False are not scores
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationError(f"{label} must be a whole number.")
    if score < 0:
        raise ValidationError(f"{label} cannot be negative.")
    return score


class MatchLifecycle:
    """Submission and response workflow for head-to-head matches"""
    
    def __init__(self, store: MatchStore, cache: RankingCache, k_factor: Optional[int] = None):
        self.store = store
        self.cache = cache
        self.k_factor = k_factor if k_factor is not None else Config.ELO_K_FACTOR
        if self.k_factor <= 0:
            raise ValueError("k_factor must be positive")
        self.logger = logger
    
    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    
    async def submit_match(self, sport, submitter_id: int, opponent_id: int,
                           submitter_score: int, opponent_score: int) -> Match:
        """
        Record a new pending match reported by one of its players.
        
        The submitter becomes player A and the opponent player B.
        
        Raises:
            ValidationError: unknown sport, self-match, bad or tied scores
            NotFoundError: submitter or opponent not registered
            PermissionDeniedError: either player is suspended
            ConflictError: a pending match already exists for this pair and sport
        """
        sport = parse_sport(sport)
        if submitter_id == opponent_id:
            raise ValidationError("You cannot submit a match against yourself.")
        _validate_score("Your score", submitter_score)
        _validate_score("Opponent score", opponent_score)
        if submitter_score == opponent_score:
            raise ValidationError("Draws are not allowed, one player must have a higher score.")
        
        submitter = await self._require_participant(submitter_id)
        opponent = await self._require_participant(opponent_id)
        if submitter.is_banned:
            raise PermissionDeniedError("Your account is suspended from submitting matches.")
        if opponent.is_banned:
            raise PermissionDeniedError(f"{opponent.name} is suspended and cannot play ranked matches.")
        
        existing = await self.store.find_pending_between(sport, submitter_id, opponent_id)
        if existing is not None:
            raise ConflictError(
                f"Match #{existing.id} between you and {opponent.name} in "
                f"{sport.display_name} is still pending."
            )
        
        match = await self.store.create_pending_match(
            sport=sport,
            player_a_id=submitter_id,
            player_b_id=opponent_id,
            player_a_score=submitter_score,
            player_b_score=opponent_score,
            submitted_by=submitter_id,
        )
        self.logger.info(
            f"Match {match.id} submitted: {sport.value} {submitter_id} {submitter_score}-"
            f"{opponent_score} {opponent_id}"
        )
        return match
    
    async def confirm_match(self, match_id: int, acting_participant_id: int) -> Match:
        """
        Confirm a pending match as its opponent and apply the rating change.
        
        Raises:
            NotFoundError: unknown match
            ConflictError: match is not pending, including losing a race with
                another confirm or deny
            PermissionDeniedError: actor is the submitter or not in the match
        """
        match = await self._require_match(match_id)
        self._ensure_pending(match)
        await self._ensure_responder(match, acting_participant_id, "confirm")
        
        player_a_won = match.winner_id == match.player_a_id
        k_factor = self.k_factor
        
        def rating_deltas(rating_a: int, rating_b: int):
            return EloCalculator.calculate_match_deltas(rating_a, rating_b, player_a_won, k_factor)
        
        try:
            confirmed = await self.store.apply(
                match_id, MatchStatus.PENDING, MatchStatus.CONFIRMED,
                rating_deltas=rating_deltas
            )
        except ConflictError:
            self.logger.info(f"Confirm of match {match_id} lost to a concurrent response")
            raise
        
        await self.cache.invalidate(confirmed.sport)
        self.logger.info(
            f"Match {match_id} confirmed by {acting_participant_id}: "
            f"{confirmed.player_a_id} {confirmed.player_a_rating_before}->{confirmed.player_a_rating_after}, "
            f"{confirmed.player_b_id} {confirmed.player_b_rating_before}->{confirmed.player_b_rating_after}"
        )
        return confirmed
    
    async def deny_match(self, match_id: int, acting_participant_id: int) -> Match:
        """Reject a pending match as its opponent. Ratings and cache are untouched."""
        match = await self._require_match(match_id)
        self._ensure_pending(match)
        await self._ensure_responder(match, acting_participant_id, "deny")
        
        try:
            denied = await self.store.apply(match_id, MatchStatus.PENDING, MatchStatus.DENIED)
        except ConflictError:
            self.logger.info(f"Deny of match {match_id} lost to a concurrent response")
            raise
        return denied
    
    async def cancel_match(self, match_id: int, acting_participant_id: int) -> Match:
        """Withdraw a pending match. Only its submitter may do this."""
        match = await self._require_match(match_id)
        self._ensure_pending(match)
        if acting_participant_id != match.submitted_by:
            raise PermissionDeniedError(f"Only the player who submitted match #{match_id} can cancel it.")
        
        try:
            cancelled = await self.store.apply(match_id, MatchStatus.PENDING, MatchStatus.CANCELLED)
        except ConflictError:
            self.logger.info(f"Cancel of match {match_id} lost to a concurrent response")
            raise
        return cancelled
    
    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    
    async def get_match(self, match_id: int) -> Match:
        return await self._require_match(match_id)
    
    async def list_matches(self, participant_id: Optional[int] = None, sport=None,
                           status: Optional[MatchStatus] = None,
                           limit: int = PaginationConstants.DEFAULT_MATCH_LIMIT,
                           offset: int = 0) -> List[Match]:
        if sport is not None:
            sport = parse_sport(sport)
        if limit < 1 or limit > PaginationConstants.MAX_MATCH_LIMIT:
            raise ValidationError(f"Limit must be between 1 and {PaginationConstants.MAX_MATCH_LIMIT}.")
        if offset < 0:
            raise ValidationError("Offset cannot be negative.")
        return await self.store.list_matches(
            participant_id=participant_id, sport=sport, status=status,
            limit=limit, offset=offset
        )
    
    async def list_pending_for(self, participant_id: int) -> List[Match]:
        """Pending matches waiting on this participant to confirm or deny"""
        pending = await self.store.list_matches(
            participant_id=participant_id,
            status=MatchStatus.PENDING,
            limit=PaginationConstants.MAX_MATCH_LIMIT
        )
        return [match for match in pending if match.submitted_by != participant_id]
    
    async def get_participant_stats(self, participant_id: int, sport) -> ParticipantSportStats:
        sport = parse_sport(sport)
        await self._require_participant(participant_id)
        
        rating = await self.store.get_rating(participant_id, sport)
        wins = losses = 0
        for player_a_id, player_b_id, winner_id in await self.store.list_confirmed_for_sport(sport):
            if participant_id not in (player_a_id, player_b_id):
                continue
            if winner_id == participant_id:
                wins += 1
            else:
                losses += 1
        
        pending = await self.store.list_matches(
            participant_id=participant_id, sport=sport, status=MatchStatus.PENDING,
            limit=PaginationConstants.MAX_MATCH_LIMIT
        )
        return ParticipantSportStats(
            participant_id=participant_id,
            sport=sport.value,
            rating=rating,
            wins=wins,
            losses=losses,
            pending=len(pending),
        )
    
    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    
    async def _require_match(self, match_id: int) -> Match:
        match = await self.store.get_match(match_id)
        if match is None:
            raise NotFoundError("match", match_id)
        return match
    
    async def _require_participant(self, participant_id: int) -> Participant:
        participant = await self.store.get_participant(participant_id)
        if participant is None:
            raise NotFoundError("participant", participant_id)
        return participant
    
    @staticmethod
    def _ensure_pending(match: Match):
        if match.status != MatchStatus.PENDING:
            raise ConflictError(f"Match #{match.id} is already {match.status.value}.")
    
    async def _ensure_responder(self, match: Match, acting_participant_id: int, action: str):
        if acting_participant_id == match.submitted_by:
            raise PermissionDeniedError(
                f"You submitted match #{match.id}, only your opponent can {action} it."
            )
        if not match.involves(acting_participant_id):
            raise PermissionDeniedError(f"You are not a player in match #{match.id}.")
        actor = await self._require_participant(acting_participant_id)
        if actor.is_banned:
            raise PermissionDeniedError("Your account is suspended from responding to matches.")
