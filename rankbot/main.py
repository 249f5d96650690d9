import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from rankbot.config import Config
from rankbot.database.database import Database
from rankbot.database.match_store import MatchStore
from rankbot.operations.admin_operations import AdminOperations
from rankbot.operations.match_lifecycle import MatchLifecycle
from rankbot.operations.participant_operations import ParticipantOperations
from rankbot.services.leaderboard import LeaderboardService
from rankbot.services.ranking_cache import CacheConfig, RankingCache
from rankbot.utils.logger import setup_logger

class RankingBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        
        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )
        
        # Attach app command error handler
        self.tree.on_error = self.on_app_command_error
        
        self.db: Optional[Database] = None
        self.match_store: Optional[MatchStore] = None
        self.ranking_cache: Optional[RankingCache] = None
        self.match_lifecycle: Optional[MatchLifecycle] = None
        self.leaderboard_service: Optional[LeaderboardService] = None
        self.admin_ops: Optional[AdminOperations] = None
        self.participant_ops: Optional[ParticipantOperations] = None
        self.logger = setup_logger(__name__)
        
    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Ranking Bot...")
        
        # Initialize database
        self.db = Database()
        await self.db.initialize()
        self.match_store = MatchStore(self.db)
        
        # One ranking cache per process, shared by every service that reads or invalidates it
        self.ranking_cache = RankingCache(CacheConfig.from_config())
        self.ranking_cache.start()
        
        self.match_lifecycle = MatchLifecycle(self.match_store, self.ranking_cache)
        self.leaderboard_service = LeaderboardService(self.db.session_factory, self.ranking_cache)
        self.admin_ops = AdminOperations(self.match_store, self.ranking_cache)
        self.participant_ops = ParticipantOperations(self.match_store)
        
        # Load cogs
        await self.load_cogs()
        
        # Sync slash commands
        await self._sync_commands()
        
        self.logger.info("Ranking Bot setup complete!")
        
    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'rankbot.cogs.matches',
            'rankbot.cogs.admin',
        ]
        
        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)
    
    async def _sync_commands(self):
        """Sync slash commands with Discord"""
        if not self.tree.get_commands():
            self.logger.warning("No application commands found to sync. Check for cog loading errors.")
            return
            
        try:
            guild_ids = Config.get_guild_ids()
            
            if guild_ids:
                # Guild-specific sync (instant updates, works in specified servers)
                total_synced = 0
                for guild_id in guild_ids:
                    try:
                        guild = discord.Object(id=guild_id)
                        self.tree.copy_global_to(guild=guild)
                        synced = await self.tree.sync(guild=guild)
                        self.logger.info(f"Synced {len(synced)} command(s) to guild {guild_id}")
                        total_synced += len(synced)
                    except discord.errors.Forbidden:
                        self.logger.error(f"Permission error syncing to guild {guild_id}. Ensure the bot has the 'application.commands' scope and is in the guild.", exc_info=True)
                    except discord.errors.HTTPException as e:
                        self.logger.error(f"HTTP error syncing to guild {guild_id}. Status: {e.status}, Response: {e.text}", exc_info=True)
                
                self.logger.info(f"Multi-guild sync complete: {total_synced} total command instances deployed")
            else:
                # Global sync (can take up to 1 hour, works everywhere)
                self.logger.info("Attempting to sync commands globally... (Note: This can take up to an hour to propagate)")
                synced = await self.tree.sync()
                self.logger.info(f"Successfully synced {len(synced)} command(s) globally")
        except Exception as e:
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)
                
    async def on_ready(self):
        """Called when the bot is ready"""
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')
        
        await self.change_presence(
            activity=discord.Game(name="Ranked matches | /leaderboard")
        )
    
    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Global error handler for slash commands"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        if isinstance(error, app_commands.CheckFailure):
            self.logger.info(f"Permission denied for command '{command_name}' by user {interaction.user}")
        else:
            self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=True)
        
        if isinstance(error, app_commands.CheckFailure) and command_name.startswith('admin-'):
            error_embed = discord.Embed(
                title="❌ Administrative Privileges Required",
                description="This command is restricted to ranking administrators only.",
                color=discord.Color.red()
            )
            error_embed.set_footer(text="Contact the bot owner if you believe you should have access.")
        elif isinstance(error, app_commands.CheckFailure):
            error_embed = discord.Embed(
                title="❌ Permission Denied",
                description="You don't have the required permissions to use this command.",
                color=discord.Color.red()
            )
        else:
            error_embed = discord.Embed(
                title="❌ An unexpected error occurred",
                description="The error has been logged. Please try again later.",
                color=discord.Color.red()
            )
        
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=error_embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=error_embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to send error response: {e}")
        
    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down Ranking Bot...")
        
        if self.ranking_cache:
            await self.ranking_cache.stop()
        if self.db:
            await self.db.close()
            
        await super().close()

async def main():
    """Main entry point"""
    Config.validate()
    
    bot = RankingBot()
    
    try:
        await bot.start(Config.DISCORD_TOKEN)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await bot.close()

def run():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    run()
