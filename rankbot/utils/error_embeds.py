"""
Centralized error embeds for consistent error handling across the ranking bot.

Every ranking error maps to one embed so commands can report failures with a
single ``ErrorEmbeds.from_exception(e)`` call.
"""

import discord
from typing import Optional

from rankbot.utils.exceptions import (
    RankingError, ValidationError, NotFoundError, ConflictError,
    PermissionDeniedError, InternalError
)


class ErrorEmbeds:
    """Centralized error embed factory for consistent error handling."""
    
    @staticmethod
    def from_exception(error: Exception) -> discord.Embed:
        """Pick the embed for a ranking error; anything else is a generic command error."""
        if isinstance(error, ValidationError):
            return ErrorEmbeds.invalid_input(error.user_message)
        if isinstance(error, NotFoundError):
            if error.entity == "match":
                return ErrorEmbeds.match_not_found(error.entity_id)
            return ErrorEmbeds.participant_not_found()
        if isinstance(error, ConflictError):
            return ErrorEmbeds.conflict(error.user_message)
        if isinstance(error, PermissionDeniedError):
            return ErrorEmbeds.permission_denied(error.user_message)
        if isinstance(error, InternalError):
            return ErrorEmbeds.database_error()
        if isinstance(error, RankingError):
            return ErrorEmbeds.command_error(error.user_message)
        return ErrorEmbeds.command_error(str(error))
    
    @staticmethod
    def participant_not_found(member: Optional[discord.abc.User] = None) -> discord.Embed:
        """Create embed for when a participant is not registered."""
        if member:
            description = f"{member.mention} hasn't played any ranked matches yet!"
        else:
            description = "This player hasn't played any ranked matches yet!"
        
        return discord.Embed(
            title="Player Not Found",
            description=description,
            color=discord.Color.red()
        )
    
    @staticmethod
    def command_error(error: str) -> discord.Embed:
        """Create embed for general command errors."""
        return discord.Embed(
            title="Command Error",
            description=f"An error occurred: {error}\n\nPlease try again or contact an administrator.",
            color=discord.Color.red()
        )
    
    @staticmethod
    def invalid_input(message: str) -> discord.Embed:
        """Create embed for invalid user input."""
        return discord.Embed(
            title="Invalid Input",
            description=message,
            color=discord.Color.red()
        )
    
    @staticmethod
    def conflict(message: str) -> discord.Embed:
        """Create embed for requests that lost to the current match state."""
        return discord.Embed(
            title="Already Resolved",
            description=message,
            color=discord.Color.orange()
        )
    
    @staticmethod
    def database_error() -> discord.Embed:
        """Create embed for database-related errors."""
        return discord.Embed(
            title="Database Error",
            description="A database error occurred and nothing was changed. Please try again later or contact an administrator.",
            color=discord.Color.red()
        )
    
    @staticmethod
    def permission_denied(message: Optional[str] = None) -> discord.Embed:
        """Create embed for permission errors."""
        return discord.Embed(
            title="Permission Denied",
            description=message or "You don't have permission to perform this action.",
            color=discord.Color.red()
        )
    
    @staticmethod
    def match_not_found(match_id: Optional[int] = None) -> discord.Embed:
        """Create embed for when a match is not found."""
        description = (f"Match #{match_id} could not be found." if match_id is not None
                       else "The specified match could not be found.")
        return discord.Embed(
            title="Match Not Found",
            description=description,
            color=discord.Color.red()
        )
