import json
import discord
from discord.ext import commands
from discord import app_commands
from typing import Optional

from rankbot.cogs.matches import SPORT_CHOICES
from rankbot.config import Config
from rankbot.constants import UIConstants
from rankbot.operations.participant_operations import is_administrator
from rankbot.utils.error_embeds import ErrorEmbeds
from rankbot.utils.exceptions import RankingError
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)


async def is_ranking_admin(interaction: discord.Interaction) -> bool:
    """Owner or a participant flagged as administrator"""
    if interaction.user.id == Config.OWNER_DISCORD_ID:
        return True
    participant = await interaction.client.participant_ops.get_by_discord_id(interaction.user.id)
    return is_administrator(participant)


class AdminCog(commands.Cog):
    """Admin-only commands for correcting ratings and moderating players"""
    
    def __init__(self, bot):
        self.bot = bot
        self.admin_ops = bot.admin_ops
        self.participant_ops = bot.participant_ops
        self.logger = logger
    
    async def _send_error(self, interaction: discord.Interaction, error: Exception, command: str):
        if isinstance(error, RankingError):
            self.logger.info(f"/{command} by {interaction.user.id} rejected: {error}")
        else:
            self.logger.error(f"Error in /{command}: {error}", exc_info=True)
        await interaction.followup.send(embed=ErrorEmbeds.from_exception(error), ephemeral=True)
    
    async def _participants(self, interaction: discord.Interaction, member: discord.abc.User):
        admin = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
        target = await self.participant_ops.get_or_create_from_discord_user(member)
        return admin, target
    
    @app_commands.command(name="admin-adjust-rating", description="Set a player's rating for one sport")
    @app_commands.describe(
        member="Player whose rating to change",
        sport="Sport to adjust",
        new_rating="New rating value",
        reason="Why the rating is being changed"
    )
    @app_commands.choices(sport=SPORT_CHOICES)
    @app_commands.check(is_ranking_admin)
    async def admin_adjust_rating(self, interaction: discord.Interaction, member: discord.Member,
                                  sport: app_commands.Choice[str], new_rating: int, reason: str):
        await interaction.response.defer(ephemeral=True)
        try:
            admin, target = await self._participants(interaction, member)
            adjustment = await self.admin_ops.adjust_rating(target.id, sport.value, new_rating, reason, admin.id)
            
            embed = discord.Embed(title="✅ Rating Adjusted", color=UIConstants.SUCCESS_COLOR)
            embed.add_field(name="Player", value=member.mention, inline=True)
            embed.add_field(name="Sport", value=sport.name, inline=True)
            embed.add_field(name="Rating", value=f"{adjustment.old_rating} → {adjustment.new_rating}", inline=True)
            embed.add_field(name="Reason", value=reason, inline=False)
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._send_error(interaction, e, "admin-adjust-rating")
    
    @app_commands.command(name="admin-revert-match", description="Undo a confirmed match and restore both ratings")
    @app_commands.describe(match_id="ID of the confirmed match")
    @app_commands.check(is_ranking_admin)
    async def admin_revert_match(self, interaction: discord.Interaction, match_id: int):
        await interaction.response.defer(ephemeral=True)
        try:
            admin = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            snapshot = await self.admin_ops.revert_match(match_id, admin.id)
            
            embed = discord.Embed(
                title=f"↩️ Match #{match_id} Reverted",
                description=f"{snapshot['sport'].replace('_', ' ').title()} match removed.",
                color=UIConstants.SUCCESS_COLOR
            )
            for restored in snapshot['restored_ratings']:
                embed.add_field(
                    name=f"Participant {restored['participant_id']}",
                    value=f"{restored['rating_before_revert']} → {restored['restored_rating']}",
                    inline=True
                )
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._send_error(interaction, e, "admin-revert-match")

    @app_commands.command(name="admin-delete-match", description="Remove a pending, denied or cancelled match")
    @app_commands.describe(match_id="ID of the match to remove", reason="Why the match is being removed")
    @app_commands.check(is_ranking_admin)
    async def admin_delete_match(self, interaction: discord.Interaction, match_id: int,
                                 reason: Optional[str] = None):
        await interaction.response.defer(ephemeral=True)
        try:
            admin = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            snapshot = await self.admin_ops.delete_match(match_id, admin.id, reason)

            embed = discord.Embed(
                title=f"🗑️ Match #{match_id} Deleted",
                description=(f"{snapshot['status'].title()} {snapshot['sport'].replace('_', ' ').title()} "
                             f"match removed, ratings unchanged."),
                color=UIConstants.SUCCESS_COLOR
            )
            if reason:
                embed.add_field(name="Reason", value=reason, inline=False)
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._send_error(interaction, e, "admin-delete-match")

    @app_commands.command(name="admin-ban", description="Suspend a player from ranked play")
    @app_commands.describe(member="Player to suspend", reason="Reason for the suspension")
    @app_commands.check(is_ranking_admin)
    async def admin_ban(self, interaction: discord.Interaction, member: discord.Member,
                        reason: Optional[str] = None):
        await interaction.response.defer(ephemeral=True)
        try:
            admin, target = await self._participants(interaction, member)
            await self.admin_ops.ban_participant(target.id, reason, admin.id)
            await interaction.followup.send(
                embed=discord.Embed(
                    title="🔨 Player Banned",
                    description=f"{member.mention} is suspended." + (f"\nReason: {reason}" if reason else ""),
                    color=UIConstants.ERROR_COLOR
                ),
                ephemeral=True
            )
        except Exception as e:
            await self._send_error(interaction, e, "admin-ban")
    
    @app_commands.command(name="admin-unban", description="Lift a player's suspension")
    @app_commands.describe(member="Player to reinstate")
    @app_commands.check(is_ranking_admin)
    async def admin_unban(self, interaction: discord.Interaction, member: discord.Member):
        await interaction.response.defer(ephemeral=True)
        try:
            admin, target = await self._participants(interaction, member)
            await self.admin_ops.unban_participant(target.id, admin.id)
            await interaction.followup.send(
                embed=discord.Embed(
                    title="✅ Player Unbanned",
                    description=f"{member.mention} can play ranked matches again.",
                    color=UIConstants.SUCCESS_COLOR
                ),
                ephemeral=True
            )
        except Exception as e:
            await self._send_error(interaction, e, "admin-unban")
    
    @app_commands.command(name="admin-set-admin", description="Grant or revoke ranking administrator rights")
    @app_commands.describe(member="Player to update", enabled="Whether the player should be an administrator")
    @app_commands.check(is_ranking_admin)
    async def admin_set_admin(self, interaction: discord.Interaction, member: discord.Member, enabled: bool):
        await interaction.response.defer(ephemeral=True)
        try:
            admin, target = await self._participants(interaction, member)
            await self.admin_ops.set_admin(target.id, enabled, admin.id)
            state = "now" if enabled else "no longer"
            await interaction.followup.send(f"✅ {member.mention} is {state} an administrator.", ephemeral=True)
        except Exception as e:
            await self._send_error(interaction, e, "admin-set-admin")
    
    @app_commands.command(name="admin-audit-log", description="Show recent administrative actions")
    @app_commands.describe(limit="Number of entries to show (max 25)")
    @app_commands.check(is_ranking_admin)
    async def admin_audit_log(self, interaction: discord.Interaction, limit: Optional[int] = 10):
        await interaction.response.defer(ephemeral=True)
        try:
            admin = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            limit = max(1, min(limit or 10, 25))
            entries = await self.admin_ops.get_audit_log(admin.id, limit=limit)
            
            embed = discord.Embed(title="📋 Audit Log", color=UIConstants.DEFAULT_EMBED_COLOR)
            if not entries:
                embed.description = "No administrative actions recorded."
            for entry in entries:
                details = json.loads(entry.details) if entry.details else {}
                summary = ", ".join(f"{k}={v}" for k, v in details.items() if not isinstance(v, (dict, list)))
                embed.add_field(
                    name=f"{entry.action_type} · {entry.target_type}:{entry.target_id}",
                    value=(f"by {entry.admin_id} at {entry.created_at:%Y-%m-%d %H:%M}\n"
                           f"{summary[:200] or '-'}" + (f"\nReason: {entry.reason}" if entry.reason else "")),
                    inline=False
                )
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._send_error(interaction, e, "admin-audit-log")
    
    @app_commands.command(name="admin-health", description="Show ranking system statistics")
    @app_commands.check(is_ranking_admin)
    async def admin_health(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            admin = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            health = await self.admin_ops.get_system_health(admin.id)
            
            embed = discord.Embed(title="📊 System Health", color=UIConstants.DEFAULT_EMBED_COLOR)
            embed.add_field(name="Participants", value=str(health['participants']), inline=True)
            embed.add_field(name="Banned", value=str(health['banned_participants']), inline=True)
            embed.add_field(
                name="Matches",
                value="\n".join(f"{status}: {count}" for status, count in health['matches'].items()),
                inline=False
            )
            cache = health['cache']
            embed.add_field(
                name="Ranking Cache",
                value=(f"{cache['entries']}/{cache['max_entries']} entries · {cache['hit_rate']}% hits · "
                       f"sweep {'running' if cache['sweep_running'] else 'stopped'}"),
                inline=False
            )
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._send_error(interaction, e, "admin-health")


async def setup(bot):
    await bot.add_cog(AdminCog(bot))
