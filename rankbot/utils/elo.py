import math
from typing import Tuple
from rankbot.config import Config

class EloCalculator:
    """Handles pairwise Elo rating calculations for head-to-head matches"""
    
    @staticmethod
    def calculate_expected_score(rating_a: int, rating_b: int) -> float:
        """
        Calculate the expected score for player A against player B
        
        Args:
            rating_a: Player A's current rating
            rating_b: Player B's current rating
            
        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))
    
    @staticmethod
    def calculate_rating_change(current_rating: int, opponent_rating: int,
                                won: bool, k_factor: int = None) -> int:
        """
        Calculate the rating change for a single player
        
        Args:
            current_rating: Player's rating before the match
            opponent_rating: Opponent's rating before the match
            won: True if the player won
            k_factor: K-factor override, defaults to Config.ELO_K_FACTOR
            
        Returns:
            Rating change (can be positive or negative)
        """
        if k_factor is None:
            k_factor = Config.ELO_K_FACTOR
        expected_score = EloCalculator.calculate_expected_score(current_rating, opponent_rating)
        actual_score = 1.0 if won else 0.0
        
        return round(k_factor * (actual_score - expected_score))
    
    @staticmethod
    def calculate_match_deltas(player_a_rating: int, player_b_rating: int,
                               player_a_won: bool, k_factor: int = None) -> Tuple[int, int]:
        """
        Calculate rating changes for both players in a match
        
        Both deltas are derived from the same pre-match rating pair. Each side
        rounds on its own, so the two deltas are not guaranteed to cancel out
        when the ratings differ.
        
        Args:
            player_a_rating: Player A's current rating
            player_b_rating: Player B's current rating
            player_a_won: True if player A won, False if player B won
            k_factor: K-factor shared by both sides
            
        Returns:
            Tuple of (player_a_change, player_b_change)
        """
        if k_factor is None:
            k_factor = Config.ELO_K_FACTOR
        if k_factor <= 0:
            raise ValueError(f"k_factor must be positive, got {k_factor}")
        
        player_a_change = EloCalculator.calculate_rating_change(
            player_a_rating, player_b_rating, player_a_won, k_factor
        )
        player_b_change = EloCalculator.calculate_rating_change(
            player_b_rating, player_a_rating, not player_a_won, k_factor
        )
        
        return player_a_change, player_b_change
    
    @staticmethod
    def calculate_win_probability(rating_a: int, rating_b: int) -> float:
        """
        Calculate win probability for player A against player B
        
        Returns:
            Win probability as percentage (0.0 to 100.0)
        """
        return EloCalculator.calculate_expected_score(rating_a, rating_b) * 100
    
    @staticmethod
    def format_rating_change(rating_change: int) -> str:
        """Format a rating change for display with an explicit sign"""
        if rating_change > 0:
            return f"+{rating_change}"
        elif rating_change < 0:
            return str(rating_change)
        else:
            return "±0"
