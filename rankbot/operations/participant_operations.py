"""
Participant Operations Module

Registers Discord users as participants and keeps their display identity in
sync. These operations own a participant's identity fields only; ratings are
written by the match lifecycle and administrative overrides.
"""

import discord
from typing import Optional, Union
from sqlalchemy import select

from rankbot.config import Config
from rankbot.database.match_store import MatchStore
from rankbot.database.models import Participant
from rankbot.utils.exceptions import ConflictError, NotFoundError, ValidationError
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)


def is_administrator(participant: Optional[Participant]) -> bool:
    """Admin flag on the participant row, or the configured bot owner"""
    if participant is None:
        return False
    if participant.is_admin:
        return True
    return bool(Config.OWNER_DISCORD_ID) and participant.discord_id == Config.OWNER_DISCORD_ID


class ParticipantOperations:
    """Participant registration and directory sync"""
    
    def __init__(self, store: MatchStore):
        self.store = store
        self.db = store.db
        self.logger = logger
    
    async def get_by_discord_id(self, discord_id: int) -> Optional[Participant]:
        return await self.db.get_participant_by_discord_id(discord_id)
    
    async def get_or_create_participant(self, discord_id: int, username: str,
                                        display_name: Optional[str] = None,
                                        campus: Optional[str] = None) -> Participant:
        """
        Get the participant for a Discord id, registering them on first contact.
        
        Existing participants get their username and display name refreshed when
        they changed. Two concurrent first contacts resolve to the same row.
        """
        username = self._clean_name(username, "Username")
        
        participant = await self.get_by_discord_id(discord_id)
        if participant is not None:
            if participant.username != username or (display_name and participant.display_name != display_name):
                participant = await self.sync_participant(discord_id, username=username, display_name=display_name)
            return participant
        
        async def _create(session):
            participant = Participant(
                discord_id=discord_id,
                username=username,
                display_name=display_name or username,
                campus=campus,
            )
            session.add(participant)
            await session.flush()
            await session.refresh(participant)
            return participant
        
        try:
            participant = await self.store.atomic("register_participant", _create)
        except ConflictError:
            # Lost a registration race; the other request created the row
            participant = await self.get_by_discord_id(discord_id)
            if participant is None:
                raise
            return participant
        
        self.logger.info(f"Registered participant {participant.id} for Discord user {discord_id} ({username})")
        return participant
    
    async def get_or_create_from_discord_user(self, discord_user: Union[discord.Member, discord.User]) -> Participant:
        """Register or refresh a participant from a Discord user object"""
        display_name = getattr(discord_user, 'display_name', None) or discord_user.name
        return await self.get_or_create_participant(
            discord_id=discord_user.id,
            username=discord_user.name,
            display_name=display_name,
        )
    
    async def sync_participant(self, discord_id: int, username: Optional[str] = None,
                               display_name: Optional[str] = None,
                               campus: Optional[str] = None) -> Participant:
        """Update identity fields from the directory. Ratings are never touched."""
        async def _sync(session):
            result = await session.execute(
                select(Participant).where(Participant.discord_id == discord_id)
            )
            participant = result.scalar_one_or_none()
            if participant is None:
                raise NotFoundError("participant", discord_id)
            if username is not None:
                participant.username = self._clean_name(username, "Username")
            if display_name is not None:
                participant.display_name = self._clean_name(display_name, "Display name")
            if campus is not None:
                participant.campus = campus.strip() or None
            await session.flush()
            await session.refresh(participant)
            return participant
        
        participant = await self.store.atomic("sync_participant", _sync)
        self.logger.debug(f"Synced participant {participant.id} from directory")
        return participant
    
    @staticmethod
    def _clean_name(value: str, label: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValidationError(f"{label} cannot be empty.")
        return value[:100]
