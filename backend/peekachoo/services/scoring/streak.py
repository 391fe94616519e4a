def next_streak(prior_streak: int, lives_remaining: int, max_lives: int) -> int:
    """Streak length after this completion.

    Finishing with every life intact extends the run; any damage restarts it,
    counting this completion as a streak of 1. A player with no history has a
    prior streak of 0.
    """
    if lives_remaining == max_lives:
        return (prior_streak or 0) + 1
    return 1
