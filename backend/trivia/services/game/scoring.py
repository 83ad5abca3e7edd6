import math
from typing import Iterable, List, Optional

# (upper bound in seconds, points) checked in order; anything slower gets SLOW_POINTS
SPEED_TIERS = ((3, 20), (7, 15), (15, 10))
SLOW_POINTS = 5
MAX_POINTS = SPEED_TIERS[0][1]


def points_for_latency(response_ms: float) -> int:
    """Points for a correct answer given how long the player took."""
    response_sec = response_ms / 1000.0
    for limit_sec, points in SPEED_TIERS:
        if response_sec <= limit_sec:
            return points
    return SLOW_POINTS


def max_score(question_count: int) -> int:
    return question_count * MAX_POINTS


def average_correct_ms(player) -> float:
    if player.correct_answer_count <= 0:
        return math.inf
    return player.total_correct_response_ms / player.correct_answer_count


def average_correct_seconds(player) -> Optional[float]:
    """Average correct-answer latency in seconds, rounded half-up to one decimal."""
    if player.correct_answer_count <= 0:
        return None
    return math.floor(average_correct_ms(player) / 100.0 + 0.5) / 10.0


def rank_players(players: Iterable) -> List:
    """Score descending, then faster average correct latency. Stable for full ties."""
    return sorted(players, key=lambda p: (-p.score, average_correct_ms(p)))


def build_leaderboard(players: Iterable, limit: int = 10) -> List[dict]:
    ranked = [p for p in rank_players(players) if p.display_name]
    return [
        {
            'rank': position,
            'name': player.display_name,
            'score': player.score,
            'photo': player.photo or None,
            'avg_time': average_correct_seconds(player),
        }
        for position, player in enumerate(ranked[:limit], start=1)
    ]
