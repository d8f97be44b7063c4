"""Quiz duel service: star-wagering trivia duels."""
