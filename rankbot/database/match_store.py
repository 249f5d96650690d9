"""
Match Record Store

Durable storage for matches and per-sport ratings. Every write that touches a
match status or a rating runs through ``atomic()``: one database transaction,
bounded by a deadline, rolled back as a whole on any failure.

Conflicting writes are serialized by the database, not by an in-process lock.
Each write transaction claims the match row with a conditional UPDATE
(``WHERE status = :expected``) before doing anything else, so of two
concurrent writers exactly one sees the expected status and the other sees
zero affected rows.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rankbot.config import Config
from rankbot.database.database import Database
from rankbot.database.models import Match, MatchStatus, Participant, ParticipantRating, Sport, utc_now
from rankbot.utils.exceptions import ConflictError, InternalError, NotFoundError, RankingError
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar('T')

# Receives (player_a_rating_before, player_b_rating_before) and returns
# (player_a_delta, player_b_delta)
RatingDeltaFn = Callable[[int, int], Tuple[int, int]]

STATUS_TIMESTAMP_FIELDS = {
    MatchStatus.CONFIRMED: 'confirmed_at',
    MatchStatus.DENIED: 'denied_at',
    MatchStatus.CANCELLED: 'cancelled_at',
}


class MatchStore:
    """Atomic write primitive and indexed lookups for matches and ratings"""
    
    def __init__(self, database: Database, write_timeout: Optional[float] = None):
        self.db = database
        self.write_timeout = write_timeout if write_timeout is not None else Config.DB_WRITE_TIMEOUT
    
    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------
    
    async def atomic(self, operation: str,
                     work: Callable[[AsyncSession], Awaitable[T]],
                     conflict_reason: str = "The record was changed by someone else, please retry.") -> T:
        """
        Run ``work`` inside one write transaction.
        
        Ranking errors raised by ``work`` roll the transaction back and propagate
        unchanged. Integrity violations become ConflictError. Any other storage
        failure, or exceeding the write deadline, rolls back and surfaces as
        InternalError.
        """
        async def _run():
            async with self.db.transaction() as session:
                return await work(session)
        
        try:
            return await asyncio.wait_for(_run(), timeout=self.write_timeout)
        except RankingError:
            raise
        except IntegrityError as e:
            logger.info(f"{operation} rejected by integrity constraint: {e.orig}")
            raise ConflictError(conflict_reason) from e
        except asyncio.TimeoutError as e:
            logger.error(f"{operation} exceeded write deadline of {self.write_timeout}s, rolled back")
            raise InternalError(operation, f"timed out after {self.write_timeout}s") from e
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed, rolled back: {e}", exc_info=True)
            raise InternalError(operation, str(e)) from e
    
    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    
    async def create_pending_match(self, sport: Sport, player_a_id: int, player_b_id: int,
                                   player_a_score: int, player_b_score: int,
                                   submitted_by: int) -> Match:
        """Insert a new pending match; the pending-pair index rejects duplicates"""
        winner_id = player_a_id if player_a_score > player_b_score else player_b_id
        
        async def _insert(session: AsyncSession) -> Match:
            match = Match(
                sport=sport,
                player_a_id=player_a_id,
                player_b_id=player_b_id,
                pair_low_id=min(player_a_id, player_b_id),
                pair_high_id=max(player_a_id, player_b_id),
                player_a_score=player_a_score,
                player_b_score=player_b_score,
                winner_id=winner_id,
                status=MatchStatus.PENDING,
                submitted_by=submitted_by,
            )
            session.add(match)
            await session.flush()
            return await self._load_match(session, match.id)
        
        return await self.atomic(
            "submit_match", _insert,
            conflict_reason="A pending match already exists between these players for this sport."
        )
    
    async def apply(self, match_id: int, from_status: MatchStatus, to_status: MatchStatus,
                    rating_deltas: Optional[RatingDeltaFn] = None) -> Match:
        """
        Atomically move a match from ``from_status`` to ``to_status``.
        
        When ``rating_deltas`` is given it is called with both players' ratings
        for the match's sport as read inside this transaction; the returned
        deltas are written to the rating rows and stamped on the match together
        with the status change.
        
        Raises:
            ValueError: the transition is not part of the status graph
            NotFoundError: no match with this id
            ConflictError: the match is no longer in ``from_status``
            InternalError: the write could not commit
        """
        if not from_status.can_transition_to(to_status):
            raise ValueError(f"Illegal match transition {from_status.value} -> {to_status.value}")
        
        async def _apply(session: AsyncSession) -> Match:
            await self._claim(session, match_id, from_status, to_status)
            match = await self._load_match(session, match_id)
            if rating_deltas is not None:
                await self._apply_rating_deltas(session, match, rating_deltas)
            await session.flush()
            return match
        
        match = await self.atomic(f"{to_status.value} match {match_id}", _apply)
        logger.info(f"Match {match_id} {from_status.value} -> {to_status.value}")
        return match
    
    async def delete_with_restore(self, session: AsyncSession, match_id: int) -> Dict:
        """
        Undo a confirmed match inside the caller's transaction.
        
        Restores both players' ratings for the match's sport to the stored
        before-snapshot, then deletes the match. Returns the full pre-revert
        match content.
        
        Raises:
            NotFoundError: no match with this id (including one already reverted)
            ConflictError: the match is not confirmed
        """
        # Claim first so concurrent reverts queue on the row or database lock
        claim = await session.execute(
            update(Match)
            .where(Match.id == match_id, Match.status == MatchStatus.CONFIRMED)
            .values(updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 0:
            await self._raise_claim_failure(session, match_id, MatchStatus.CONFIRMED)
        
        match = await self._load_match(session, match_id)
        snapshot = match.to_audit_dict()
        
        restored = []
        for player_id, before, after in (
            (match.player_a_id, match.player_a_rating_before, match.player_a_rating_after),
            (match.player_b_id, match.player_b_rating_before, match.player_b_rating_after),
        ):
            rating_row = await self.get_rating_for_update(session, player_id, match.sport)
            restored.append({
                'participant_id': player_id,
                'rating_before_revert': rating_row.rating,
                'restored_rating': before,
                'match_rating_after': after,
            })
            rating_row.rating = before
        
        await session.execute(delete(Match).where(Match.id == match_id))
        await session.flush()
        
        snapshot['restored_ratings'] = restored
        return snapshot

    async def delete_unconfirmed(self, session: AsyncSession, match_id: int) -> Dict:
        """
        Remove a pending, denied or cancelled match inside the caller's transaction.

        Ratings are untouched since only confirmed matches moved them. Deleting
        a pending match frees its pair and sport for a new submission.

        Raises:
            NotFoundError: no match with this id
            ConflictError: the match is confirmed and must be reverted instead
        """
        claim = await session.execute(
            update(Match)
            .where(Match.id == match_id, Match.status != MatchStatus.CONFIRMED)
            .values(updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 0:
            current = await session.scalar(select(Match.status).where(Match.id == match_id))
            if current is None:
                raise NotFoundError("match", match_id)
            raise ConflictError(
                f"Match #{match_id} is confirmed, revert it to restore ratings instead."
            )

        match = await self._load_match(session, match_id)
        snapshot = match.to_audit_dict()
        await session.execute(delete(Match).where(Match.id == match_id))
        await session.flush()
        return snapshot

    async def get_rating_for_update(self, session: AsyncSession, participant_id: int,
                                    sport: Sport) -> ParticipantRating:
        """Lock a participant's rating row for one sport, creating it at the starting rating"""
        result = await session.execute(
            select(ParticipantRating)
            .where(
                ParticipantRating.participant_id == participant_id,
                ParticipantRating.sport == sport
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rating_row = result.scalar_one_or_none()
        if rating_row is None:
            rating_row = ParticipantRating(
                participant_id=participant_id,
                sport=sport,
                rating=Config.DEFAULT_RATING,
                highest_rating=Config.DEFAULT_RATING,
            )
            session.add(rating_row)
            await session.flush()
        return rating_row
    
    async def _claim(self, session: AsyncSession, match_id: int,
                     from_status: MatchStatus, to_status: MatchStatus):
        values = {'status': to_status}
        timestamp_field = STATUS_TIMESTAMP_FIELDS.get(to_status)
        if timestamp_field:
            values[timestamp_field] = utc_now()
        
        result = await session.execute(
            update(Match)
            .where(Match.id == match_id, Match.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._raise_claim_failure(session, match_id, from_status)
    
    async def _raise_claim_failure(self, session: AsyncSession, match_id: int,
                                   expected: MatchStatus):
        current = await session.scalar(select(Match.status).where(Match.id == match_id))
        if current is None:
            raise NotFoundError("match", match_id)
        raise ConflictError(
            f"Match #{match_id} is already {current.value}, it is no longer {expected.value}."
        )
    
    async def _apply_rating_deltas(self, session: AsyncSession, match: Match,
                                   rating_deltas: RatingDeltaFn):
        rating_a = await self.get_rating_for_update(session, match.player_a_id, match.sport)
        rating_b = await self.get_rating_for_update(session, match.player_b_id, match.sport)
        
        before_a, before_b = rating_a.rating, rating_b.rating
        # Both deltas come from the same pre-update pair before either row changes
        delta_a, delta_b = rating_deltas(before_a, before_b)
        
        rating_a.rating = before_a + delta_a
        rating_b.rating = before_b + delta_b
        rating_a.highest_rating = max(rating_a.highest_rating or 0, rating_a.rating)
        rating_b.highest_rating = max(rating_b.highest_rating or 0, rating_b.rating)
        
        match.player_a_rating_before = before_a
        match.player_a_rating_delta = delta_a
        match.player_a_rating_after = rating_a.rating
        match.player_b_rating_before = before_b
        match.player_b_rating_delta = delta_b
        match.player_b_rating_after = rating_b.rating
    
    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    
    async def _load_match(self, session: AsyncSession, match_id: int) -> Match:
        result = await session.execute(
            select(Match)
            .where(Match.id == match_id)
            .execution_options(populate_existing=True)
        )
        match = result.scalar_one_or_none()
        if match is None:
            raise NotFoundError("match", match_id)
        return match
    
    async def get_match(self, match_id: int) -> Optional[Match]:
        async with self.db.get_session() as session:
            return await session.get(Match, match_id)
    
    async def find_pending_between(self, sport: Sport, participant_a_id: int,
                                   participant_b_id: int) -> Optional[Match]:
        """Find the pending match for an unordered pair in one sport, if any"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match).where(
                    Match.sport == sport,
                    Match.status == MatchStatus.PENDING,
                    Match.pair_low_id == min(participant_a_id, participant_b_id),
                    Match.pair_high_id == max(participant_a_id, participant_b_id),
                )
            )
            return result.scalar_one_or_none()
    
    async def list_matches(self, participant_id: Optional[int] = None,
                           sport: Optional[Sport] = None,
                           status: Optional[MatchStatus] = None,
                           limit: int = 50, offset: int = 0) -> List[Match]:
        """List matches newest first, optionally filtered by participant, sport and status"""
        query = select(Match)
        conditions = []
        if participant_id is not None:
            conditions.append(or_(
                Match.player_a_id == participant_id,
                Match.player_b_id == participant_id
            ))
        if sport is not None:
            conditions.append(Match.sport == sport)
        if status is not None:
            conditions.append(Match.status == status)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Match.created_at.desc(), Match.id.desc()).limit(limit).offset(offset)
        
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
    
    async def list_confirmed_for_sport(self, sport: Sport) -> List[Tuple[int, int, int]]:
        """(player_a_id, player_b_id, winner_id) for every confirmed match in a sport"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match.player_a_id, Match.player_b_id, Match.winner_id)
                .where(Match.sport == sport, Match.status == MatchStatus.CONFIRMED)
            )
            return [tuple(row) for row in result.all()]
    
    async def get_participant(self, participant_id: int) -> Optional[Participant]:
        return await self.db.get_participant(participant_id)
    
    async def get_rating(self, participant_id: int, sport: Sport) -> int:
        """Current rating without locking; the starting rating if never rated"""
        async with self.db.get_session() as session:
            rating = await session.scalar(
                select(ParticipantRating.rating).where(
                    ParticipantRating.participant_id == participant_id,
                    ParticipantRating.sport == sport
                )
            )
        return rating if rating is not None else Config.DEFAULT_RATING
