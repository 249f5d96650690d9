"""
Administrative Operations Module

Manual corrections layered on the Match Record Store:
- adjust_rating(): overwrite one participant's rating in one sport
- revert_match(): undo a confirmed match and restore both ratings
- delete_match(): remove an unconfirmed (e.g. spam) match
- ban_participant() / unban_participant(): toggle suspension
- set_admin(): grant or revoke the administrator flag

Administrators are exempt from the player-only rules of the match lifecycle,
but every action runs in one atomic transaction that also writes its
AdminAuditLog row, so an action and its audit entry commit or fail together.
"""

import json
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rankbot.constants import PaginationConstants
from rankbot.database.match_store import MatchStore
from rankbot.database.models import (
    Participant, Match, MatchStatus, Sport, RatingAdjustment, AdminAuditLog, utc_now
)
from rankbot.operations.match_lifecycle import parse_sport
from rankbot.operations.participant_operations import is_administrator
from rankbot.services.ranking_cache import RankingCache
from rankbot.utils.exceptions import (
    ConflictError, NotFoundError, PermissionDeniedError, ValidationError
)
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)


class AdminOperations:
    """
    Business logic operations for ranking administration.
    
    Every write checks the acting participant's administrator status inside the
    same transaction it mutates in.
    """
    
    def __init__(self, store: MatchStore, cache: RankingCache):
        """Initialize with the match store and the shared ranking cache"""
        self.store = store
        self.db = store.db
        self.cache = cache
        self.logger = logger
    
    async def _require_admin(self, session: AsyncSession, admin_id: int) -> Participant:
        admin = await session.get(Participant, admin_id)
        if not is_administrator(admin):
            raise PermissionDeniedError("This action requires administrator permissions.")
        return admin
    
    async def _require_target(self, session: AsyncSession, participant_id: int) -> Participant:
        participant = await session.get(Participant, participant_id)
        if participant is None:
            raise NotFoundError("participant", participant_id)
        return participant
    
    async def _create_audit_log(
        self,
        session: AsyncSession,
        admin_id: int,
        action_type: str,
        target_type: Optional[str] = None,
        target_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None
    ) -> AdminAuditLog:
        """
        Add an audit entry to the caller's transaction.
        
        Args:
            session: Session of the transaction performing the action
            admin_id: Participant id of the acting administrator
            action_type: Type of action (e.g., "adjust_rating", "revert_match")
            target_type: Type of target ("participant" or "match")
            target_id: ID of target entity
            details: Structured detail, stored as JSON
            reason: Admin-provided reason for action
        """
        audit_entry = AdminAuditLog(
            admin_id=admin_id,
            action_type=action_type,
            target_type=target_type,
            target_id=target_id,
            details=json.dumps(details, default=str) if details else None,
            reason=reason
        )
        session.add(audit_entry)
        await session.flush()
        return audit_entry
    
    # ------------------------------------------------------------------
    # Rating overrides
    # ------------------------------------------------------------------
    
    async def adjust_rating(self, participant_id: int, sport, new_rating: int,
                            reason: str, acting_admin_id: int) -> RatingAdjustment:
        """
        Overwrite a participant's rating for one sport.
        
        Not undoable on its own; a second adjustment restores the old value.
        
        Raises:
            ValidationError: unknown sport, negative or non-integer rating, empty reason
            PermissionDeniedError: actor is not an administrator
            NotFoundError: unknown participant
        """
        sport = parse_sport(sport)
        if isinstance(new_rating, bool) or not isinstance(new_rating, int):
            raise ValidationError("Rating must be a whole number.")
        if new_rating < 0:
            raise ValidationError("Rating cannot be negative.")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required for rating adjustments.")
        
        async def _adjust(session: AsyncSession) -> RatingAdjustment:
            await self._require_admin(session, acting_admin_id)
            target = await self._require_target(session, participant_id)
            
            rating_row = await self.store.get_rating_for_update(session, participant_id, sport)
            old_rating = rating_row.rating
            rating_row.rating = new_rating
            rating_row.highest_rating = max(rating_row.highest_rating or 0, new_rating)
            
            adjustment = RatingAdjustment(
                participant_id=participant_id,
                sport=sport,
                old_rating=old_rating,
                new_rating=new_rating,
                reason=reason,
                adjusted_by=acting_admin_id,
            )
            session.add(adjustment)
            
            await self._create_audit_log(
                session, acting_admin_id, "adjust_rating",
                target_type="participant", target_id=participant_id,
                details={
                    'participant_name': target.name,
                    'sport': sport.value,
                    'old_rating': old_rating,
                    'new_rating': new_rating,
                    'change': new_rating - old_rating,
                },
                reason=reason
            )
            return adjustment
        
        adjustment = await self.store.atomic("adjust_rating", _adjust)
        await self.cache.invalidate(sport)
        
        self.logger.info(
            f"Admin {acting_admin_id} adjusted participant {participant_id} {sport.value} rating "
            f"{adjustment.old_rating} -> {adjustment.new_rating}: {reason}"
        )
        return adjustment
    
    async def revert_match(self, match_id: int, acting_admin_id: int) -> Dict[str, Any]:
        """
        Undo a confirmed match.
        
        Both players' ratings for the match's sport go back to the stored
        before-snapshot and the match is deleted, in one transaction. Reverting
        the same id twice fails the second time with NotFoundError.
        
        Returns:
            The pre-revert match content, including the restored ratings
        """
        async def _revert(session: AsyncSession) -> Dict[str, Any]:
            await self._require_admin(session, acting_admin_id)
            snapshot = await self.store.delete_with_restore(session, match_id)
            await self._create_audit_log(
                session, acting_admin_id, "revert_match",
                target_type="match", target_id=match_id,
                details=snapshot
            )
            return snapshot
        
        snapshot = await self.store.atomic(f"revert match {match_id}", _revert)
        await self.cache.invalidate(snapshot['sport'])
        
        self.logger.info(
            f"Admin {acting_admin_id} reverted match {match_id} ({snapshot['sport']}), "
            f"restored {snapshot['player_a_id']}->{snapshot['player_a_rating_before']} and "
            f"{snapshot['player_b_id']}->{snapshot['player_b_rating_before']}"
        )
        return snapshot

    async def delete_match(self, match_id: int, acting_admin_id: int,
                           reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Remove a pending, denied or cancelled match, e.g. a spam submission.

        Confirmed matches are refused with ConflictError; revert_match is the
        only way to undo one. The audit entry keeps the full match content.
        """
        reason = (reason or "").strip() or None

        async def _delete(session: AsyncSession) -> Dict[str, Any]:
            await self._require_admin(session, acting_admin_id)
            snapshot = await self.store.delete_unconfirmed(session, match_id)
            await self._create_audit_log(
                session, acting_admin_id, "delete_match",
                target_type="match", target_id=match_id,
                details=snapshot,
                reason=reason
            )
            return snapshot

        snapshot = await self.store.atomic(f"delete match {match_id}", _delete)
        self.logger.info(
            f"Admin {acting_admin_id} deleted {snapshot['status']} match {match_id} ({snapshot['sport']})"
        )
        return snapshot

    # ------------------------------------------------------------------
    # Participant administration
    # ------------------------------------------------------------------
    
    async def ban_participant(self, participant_id: int, reason: str,
                              acting_admin_id: int) -> Participant:
        """
        Suspend a participant. Past matches and ratings are left as they are.
        
        Raises:
            PermissionDeniedError: actor is not an admin, is banning themselves,
                or the target is an administrator
            NotFoundError: unknown participant
            ConflictError: participant is already suspended
        """
        reason = (reason or "").strip() or None
        
        async def _ban(session: AsyncSession) -> Participant:
            await self._require_admin(session, acting_admin_id)
            if participant_id == acting_admin_id:
                raise PermissionDeniedError("You cannot ban yourself.")
            target = await self._require_target(session, participant_id)
            if is_administrator(target):
                raise PermissionDeniedError("Administrators cannot be banned.")
            if target.is_banned:
                raise ConflictError(f"{target.name} is already banned.")
            
            target.is_banned = True
            target.ban_reason = reason
            target.banned_at = utc_now()
            target.banned_by = acting_admin_id
            
            await self._create_audit_log(
                session, acting_admin_id, "ban_participant",
                target_type="participant", target_id=participant_id,
                details={'participant_name': target.name},
                reason=reason
            )
            return target
        
        target = await self.store.atomic("ban_participant", _ban)
        # Banned participants are hidden from every sport's leaderboard
        await self.cache.clear()
        self.logger.info(f"Admin {acting_admin_id} banned participant {participant_id}: {reason}")
        return target
    
    async def unban_participant(self, participant_id: int, acting_admin_id: int) -> Participant:
        async def _unban(session: AsyncSession) -> Participant:
            await self._require_admin(session, acting_admin_id)
            target = await self._require_target(session, participant_id)
            if not target.is_banned:
                raise ConflictError(f"{target.name} is not banned.")
            
            previous_reason = target.ban_reason
            target.is_banned = False
            target.ban_reason = None
            target.banned_at = None
            target.banned_by = None
            
            await self._create_audit_log(
                session, acting_admin_id, "unban_participant",
                target_type="participant", target_id=participant_id,
                details={'participant_name': target.name, 'previous_ban_reason': previous_reason}
            )
            return target
        
        target = await self.store.atomic("unban_participant", _unban)
        await self.cache.clear()
        self.logger.info(f"Admin {acting_admin_id} unbanned participant {participant_id}")
        return target
    
    async def set_admin(self, participant_id: int, is_admin: bool, acting_admin_id: int) -> Participant:
        """Grant or revoke the administrator flag. Admins cannot demote themselves."""
        async def _set(session: AsyncSession) -> Participant:
            await self._require_admin(session, acting_admin_id)
            if participant_id == acting_admin_id and not is_admin:
                raise PermissionDeniedError("You cannot remove your own administrator role.")
            target = await self._require_target(session, participant_id)
            if target.is_banned and is_admin:
                raise ConflictError(f"{target.name} is banned and cannot be made an administrator.")
            
            target.is_admin = bool(is_admin)
            await self._create_audit_log(
                session, acting_admin_id, "grant_admin" if is_admin else "revoke_admin",
                target_type="participant", target_id=participant_id,
                details={'participant_name': target.name}
            )
            return target
        
        target = await self.store.atomic("set_admin", _set)
        self.logger.info(f"Admin {acting_admin_id} set admin={is_admin} for participant {participant_id}")
        return target
    
    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    
    async def _check_admin(self, acting_admin_id: int):
        async with self.db.get_session() as session:
            await self._require_admin(session, acting_admin_id)
    
    async def get_audit_log(self, acting_admin_id: int,
                            limit: int = PaginationConstants.DEFAULT_AUDIT_LIMIT,
                            action_type: Optional[str] = None) -> List[AdminAuditLog]:
        """Most recent audit entries first"""
        await self._check_admin(acting_admin_id)
        query = select(AdminAuditLog).order_by(AdminAuditLog.created_at.desc(), AdminAuditLog.id.desc())
        if action_type:
            query = query.where(AdminAuditLog.action_type == action_type)
        async with self.db.get_session() as session:
            result = await session.execute(query.limit(limit))
            return list(result.scalars().all())
    
    async def get_rating_adjustments(self, acting_admin_id: int,
                                     limit: int = PaginationConstants.DEFAULT_AUDIT_LIMIT,
                                     participant_id: Optional[int] = None) -> List[RatingAdjustment]:
        await self._check_admin(acting_admin_id)
        query = select(RatingAdjustment).order_by(RatingAdjustment.created_at.desc(), RatingAdjustment.id.desc())
        if participant_id is not None:
            query = query.where(RatingAdjustment.participant_id == participant_id)
        async with self.db.get_session() as session:
            result = await session.execute(query.limit(limit))
            return list(result.scalars().all())
    
    async def get_banned_participants(self, acting_admin_id: int) -> List[Participant]:
        await self._check_admin(acting_admin_id)
        return await self.db.get_banned_participants()
    
    async def get_confirmed_matches(self, acting_admin_id: int,
                                    limit: int = PaginationConstants.DEFAULT_MATCH_LIMIT,
                                    sport=None) -> List[Match]:
        """Confirmed matches, newest first; these are the ones that can be reverted"""
        await self._check_admin(acting_admin_id)
        if sport is not None:
            sport = parse_sport(sport)
        return await self.store.list_matches(sport=sport, status=MatchStatus.CONFIRMED, limit=limit)
    
    async def get_system_health(self, acting_admin_id: int) -> Dict[str, Any]:
        """Row counts and cache statistics for the admin dashboard"""
        await self._check_admin(acting_admin_id)
        async with self.db.get_session() as session:
            participants = await session.scalar(select(func.count(Participant.id)))
            banned = await session.scalar(
                select(func.count(Participant.id)).where(Participant.is_banned == True)
            )
            status_rows = await session.execute(
                select(Match.status, func.count(Match.id)).group_by(Match.status)
            )
            matches_by_status = {status.value: 0 for status in MatchStatus}
            for status, count in status_rows.all():
                matches_by_status[status.value] = count
        
        cache_stats = await self.cache.stats()
        return {
            'participants': participants,
            'banned_participants': banned,
            'matches': matches_by_status,
            'sports': [sport.value for sport in Sport],
            'cache': {
                'entries': cache_stats.entries,
                'max_entries': cache_stats.max_entries,
                'hit_rate': round(cache_stats.hit_rate, 1),
                'evictions': cache_stats.evictions,
                'sweep_running': cache_stats.running,
            },
        }
