import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Bot configuration settings"""
    
    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated for multi-guild support
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ranking.db')
    DB_WRITE_TIMEOUT = float(os.getenv('DB_WRITE_TIMEOUT', 10))  # Seconds per atomic write
    
    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    
    # Rating settings
    DEFAULT_RATING = int(os.getenv('DEFAULT_ELO', 1000))
    ELO_K_FACTOR = int(os.getenv('ELO_K_FACTOR', 32))
    
    # Ranking cache settings
    RANKING_CACHE_TTL = int(os.getenv('RANKING_CACHE_TTL', 300))
    RANKING_CACHE_CLEANUP_INTERVAL = int(os.getenv('RANKING_CACHE_CLEANUP_INTERVAL', 60))
    RANKING_CACHE_MAX_ENTRIES = int(os.getenv('RANKING_CACHE_MAX_ENTRIES', 100))
    
    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            # Multi-guild support: comma-separated IDs
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            # Global sync
            return []
    
    @classmethod
    def validate_ratings(cls):
        """Validate rating and cache settings (no Discord settings required)"""
        if cls.ELO_K_FACTOR <= 0:
            raise ValueError("ELO_K_FACTOR must be positive")
        if cls.DEFAULT_RATING < 0:
            raise ValueError("DEFAULT_ELO cannot be negative")
        if cls.RANKING_CACHE_TTL <= 0 or cls.RANKING_CACHE_CLEANUP_INTERVAL <= 0:
            raise ValueError("RANKING_CACHE_TTL and RANKING_CACHE_CLEANUP_INTERVAL must be positive")
        if cls.RANKING_CACHE_MAX_ENTRIES <= 0:
            raise ValueError("RANKING_CACHE_MAX_ENTRIES must be positive")
        if cls.DB_WRITE_TIMEOUT <= 0:
            raise ValueError("DB_WRITE_TIMEOUT must be positive")
    
    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        cls.validate_ratings()
