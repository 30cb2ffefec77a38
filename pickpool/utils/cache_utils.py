"""
Cache utilities for leaderboard reads
Leaderboard responses are cached per (scope, period key) and invalidated by
the recompute coordinator after each commit.
"""

from flask import current_app

from pickpool import cache


def leaderboard_cache_key(scope, period_key):
    return f"leaderboard:{scope}:{period_key}"


def get_cached_leaderboard(scope, period_key):
    """Cached leaderboard payload, or None on a miss"""
    key = leaderboard_cache_key(scope, period_key)
    result = cache.get(key)
    if result is not None:
        current_app.logger.debug(f"Cache hit for key: {key}")
    return result


def set_cached_leaderboard(scope, period_key, payload, timeout=None):
    key = leaderboard_cache_key(scope, period_key)
    if timeout is None:
        timeout = current_app.config.get("LEADERBOARD_CACHE_TIMEOUT", 300)
    cache.set(key, payload, timeout=timeout)
    current_app.logger.debug(f"Cache set for key: {key}")


def invalidate_leaderboard(scope, period_key):
    """Drop the cached payload for one scope"""
    key = leaderboard_cache_key(scope, period_key)
    cache.delete(key)
    current_app.logger.debug(f"Cache invalidated for key: {key}")


class CacheManager:
    """Cache management utilities"""

    @staticmethod
    def get_cache_stats():
        return {
            "type": current_app.config.get("CACHE_TYPE", "Unknown"),
            "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
            "leaderboard_timeout": current_app.config.get(
                "LEADERBOARD_CACHE_TIMEOUT", 300
            ),
        }
