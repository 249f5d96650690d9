import discord
from discord.ext import commands
from discord import app_commands
from typing import Optional

from rankbot.constants import PaginationConstants, UIConstants
from rankbot.database.models import Match, Sport
from rankbot.utils.elo import EloCalculator
from rankbot.utils.error_embeds import ErrorEmbeds
from rankbot.utils.exceptions import RankingError
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)

SPORT_CHOICES = [app_commands.Choice(name=sport.display_name, value=sport.value) for sport in Sport]


class MatchesCog(commands.Cog):
    """Match submission, responses and per-sport leaderboards"""
    
    def __init__(self, bot):
        self.bot = bot
        self.lifecycle = bot.match_lifecycle
        self.participant_ops = bot.participant_ops
        self.leaderboard_service = bot.leaderboard_service
    
    async def _send_error(self, interaction: discord.Interaction, error: Exception, command: str):
        if isinstance(error, RankingError):
            logger.info(f"/{command} by {interaction.user.id} rejected: {error}")
        else:
            logger.error(f"Error in /{command}: {error}", exc_info=True)
        embed = ErrorEmbeds.from_exception(error)
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)
    
    def _match_embed(self, match: Match, title: str, color: discord.Color) -> discord.Embed:
        player_a = match.player_a.name if match.player_a else f"#{match.player_a_id}"
        player_b = match.player_b.name if match.player_b else f"#{match.player_b_id}"
        embed = discord.Embed(
            title=title,
            description=f"**{player_a}** {match.player_a_score} - {match.player_b_score} **{player_b}**",
            color=color
        )
        embed.add_field(name="Sport", value=match.sport.display_name, inline=True)
        embed.add_field(name="Match ID", value=str(match.id), inline=True)
        embed.add_field(name="Status", value=match.status.value.title(), inline=True)
        if match.player_a_rating_delta is not None:
            embed.add_field(
                name=f"{player_a} rating",
                value=f"{match.player_a_rating_before} → {match.player_a_rating_after} "
                      f"({EloCalculator.format_rating_change(match.player_a_rating_delta)})",
                inline=False
            )
            embed.add_field(
                name=f"{player_b} rating",
                value=f"{match.player_b_rating_before} → {match.player_b_rating_after} "
                      f"({EloCalculator.format_rating_change(match.player_b_rating_delta)})",
                inline=False
            )
        return embed
    
    @app_commands.command(name="match-submit", description="Report the result of a ranked match")
    @app_commands.describe(
        sport="Sport that was played",
        opponent="Who you played against",
        your_score="Your score",
        opponent_score="Your opponent's score"
    )
    @app_commands.choices(sport=SPORT_CHOICES)
    async def match_submit(self, interaction: discord.Interaction, sport: app_commands.Choice[str],
                           opponent: discord.Member, your_score: int, opponent_score: int):
        await interaction.response.defer()
        try:
            if opponent.bot:
                raise RankingError("Bots cannot play ranked matches.", "❌ Bots cannot play ranked matches.")
            submitter = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            opponent_participant = await self.participant_ops.get_or_create_from_discord_user(opponent)
            
            match = await self.lifecycle.submit_match(
                sport.value, submitter.id, opponent_participant.id, your_score, opponent_score
            )
            embed = self._match_embed(match, f"{UIConstants.PENDING_EMOJI} Match Submitted", discord.Color.blue())
            embed.set_footer(text=f"{opponent.display_name}: use /match-confirm {match.id} or /match-deny {match.id}")
            await interaction.followup.send(content=opponent.mention, embed=embed)
        except Exception as e:
            await self._send_error(interaction, e, "match-submit")
    
    @app_commands.command(name="match-confirm", description="Confirm a match your opponent reported")
    @app_commands.describe(match_id="ID of the pending match")
    async def match_confirm(self, interaction: discord.Interaction, match_id: int):
        await interaction.response.defer()
        try:
            actor = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            match = await self.lifecycle.confirm_match(match_id, actor.id)
            await interaction.followup.send(
                embed=self._match_embed(match, "✅ Match Confirmed", discord.Color.green())
            )
        except Exception as e:
            await self._send_error(interaction, e, "match-confirm")
    
    @app_commands.command(name="match-deny", description="Reject a match your opponent reported")
    @app_commands.describe(match_id="ID of the pending match")
    async def match_deny(self, interaction: discord.Interaction, match_id: int):
        await interaction.response.defer()
        try:
            actor = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            match = await self.lifecycle.deny_match(match_id, actor.id)
            await interaction.followup.send(
                embed=self._match_embed(match, "❌ Match Denied", discord.Color.red())
            )
        except Exception as e:
            await self._send_error(interaction, e, "match-deny")
    
    @app_commands.command(name="match-cancel", description="Withdraw a match you reported")
    @app_commands.describe(match_id="ID of the pending match")
    async def match_cancel(self, interaction: discord.Interaction, match_id: int):
        await interaction.response.defer(ephemeral=True)
        try:
            actor = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            match = await self.lifecycle.cancel_match(match_id, actor.id)
            await interaction.followup.send(
                embed=self._match_embed(match, "🚫 Match Cancelled", discord.Color.light_grey()),
                ephemeral=True
            )
        except Exception as e:
            await self._send_error(interaction, e, "match-cancel")
    
    @app_commands.command(name="match-pending", description="List matches waiting for your response")
    async def match_pending(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            actor = await self.participant_ops.get_or_create_from_discord_user(interaction.user)
            pending = await self.lifecycle.list_pending_for(actor.id)
            
            embed = discord.Embed(
                title=f"{UIConstants.PENDING_EMOJI} Matches Awaiting Your Response",
                color=UIConstants.DEFAULT_EMBED_COLOR
            )
            if not pending:
                embed.description = "Nothing to confirm right now."
            for match in pending[:25]:
                submitter = match.player_a if match.player_a_id == match.submitted_by else match.player_b
                embed.add_field(
                    name=f"#{match.id} · {match.sport.display_name}",
                    value=f"From **{submitter.name if submitter else match.submitted_by}**: "
                          f"{match.player_a_score} - {match.player_b_score}",
                    inline=False
                )
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._send_error(interaction, e, "match-pending")
    
    @app_commands.command(name="leaderboard", description="View the ranking for a sport")
    @app_commands.describe(sport="Sport to rank", page="Page number")
    @app_commands.choices(sport=SPORT_CHOICES)
    async def leaderboard(self, interaction: discord.Interaction, sport: app_commands.Choice[str],
                          page: Optional[int] = 1):
        await interaction.response.defer()
        try:
            page_size = PaginationConstants.DEFAULT_PAGE_SIZE
            board, entries = await self.leaderboard_service.get_page(sport.value, page or 1, page_size)
            
            embed = discord.Embed(
                title=f"{UIConstants.TROPHY_EMOJI} {sport.name} Leaderboard",
                color=UIConstants.GOLD_RANK_COLOR
            )
            if not entries:
                embed.description = "No ranked players on this page yet."
            else:
                lines = [
                    f"`{entry.rank:>3}.` **{entry.display_name}** · {entry.rating} "
                    f"({entry.wins}W-{entry.losses}L, {entry.win_rate:.0f}%)"
                    for entry in entries
                ]
                embed.description = "\n".join(lines)
            embed.set_footer(
                text=f"Page {page or 1}/{board.total_pages(page_size)} · {board.total_participants} players"
            )
            await interaction.followup.send(embed=embed)
        except Exception as e:
            await self._send_error(interaction, e, "leaderboard")
    
    @app_commands.command(name="rating", description="Show ratings and records for a player")
    @app_commands.describe(member="Player to look up (defaults to you)")
    async def rating(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        await interaction.response.defer()
        try:
            target = member or interaction.user
            participant = await self.participant_ops.get_by_discord_id(target.id)
            if participant is None:
                await interaction.followup.send(embed=ErrorEmbeds.participant_not_found(target))
                return
            
            embed = discord.Embed(title=f"{participant.name}'s Ratings", color=UIConstants.DEFAULT_EMBED_COLOR)
            for sport in Sport:
                stats = await self.lifecycle.get_participant_stats(participant.id, sport)
                embed.add_field(
                    name=sport.display_name,
                    value=f"**{stats.rating}** · {stats.wins}W-{stats.losses}L "
                          f"({stats.win_rate:.0f}%) · {stats.pending} pending",
                    inline=False
                )
            await interaction.followup.send(embed=embed)
        except Exception as e:
            await self._send_error(interaction, e, "rating")


async def setup(bot):
    await bot.add_cog(MatchesCog(bot))
