"""
Cache utilities for the Master League application

Leaderboard reads are cached per scope and invalidated explicitly whenever a
scope is recalculated.
"""

from flask import current_app

from masterleague import cache


def leaderboard_cache_key(kind, group_id, season_id):
    """Cache key for one leaderboard view of a scope"""
    scope = f"group_{group_id}" if group_id is not None else "global"
    return f"leaderboard_{kind}_{scope}_season_{season_id}"


LEADERBOARD_VIEWS = ("standings", "weekly", "history")


def invalidate_leaderboard_cache(group_id, season_id):
    """Drop every cached view of one leaderboard scope"""
    keys = [leaderboard_cache_key(view, group_id, season_id) for view in LEADERBOARD_VIEWS]
    cache.delete_many(*keys)
    current_app.logger.debug(f"Leaderboard cache invalidated: {keys}")


def get_cache_stats():
    """Get cache statistics"""
    return {
        "type": current_app.config.get("CACHE_TYPE", "Unknown"),
        "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
    }
