"""
Services package for the ranking bot.

Read-side services and the shared ranking cache.
"""

from .base import BaseService
from .ranking_cache import CacheConfig, RankingCache
from .leaderboard import LeaderboardService

__all__ = ['BaseService', 'CacheConfig', 'RankingCache', 'LeaderboardService']
