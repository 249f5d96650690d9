"""
Bot-wide constants for the campus ranking bot.

Magic numbers used by the presentation layer and the read path live here so
the operations layer stays free of display concerns.
"""

class PaginationConstants:
    """Constants for paginated displays."""
    
    # Default number of leaderboard rows shown in one embed
    DEFAULT_PAGE_SIZE = 10
    
    # Default and maximum rows returned by match listings
    DEFAULT_MATCH_LIMIT = 50
    MAX_MATCH_LIMIT = 200
    
    # Audit log listing default
    DEFAULT_AUDIT_LIMIT = 100

class UIConstants:
    """Constants for Discord UI elements."""
    
    # Embed colors
    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    GOLD_RANK_COLOR = 0xffd700     # Gold for #1 ranked players
    ERROR_COLOR = 0xe74c3c         # Red for errors
    SUCCESS_COLOR = 0x2ecc71       # Green for success
    
    TROPHY_EMOJI = "🏆"
    PENDING_EMOJI = "⏳"
