"""
Feature Flags Configuration

Centralized feature flag management for the backend.
All feature flags are loaded from environment variables.
"""
import os


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    """
    Feature flags for the application.

    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    # Generative judge for games, settlements and reflections.
    # Only takes effect when an API key is configured as well.
    FEATURE_WORLD_MODEL: bool = get_bool_env('FEATURE_WORLD_MODEL', True)

    # Pre/in/post-game dialogue after each game involving a real agent
    FEATURE_GAME_INTERACTIONS: bool = get_bool_env('FEATURE_GAME_INTERACTIONS', True)

    # Scheduler tick may open a new tournament when none is active
    FEATURE_TOURNAMENT_AUTO_CREATE: bool = get_bool_env('FEATURE_TOURNAMENT_AUTO_CREATE', True)

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled by name."""
        return getattr(cls, flag_name, False)

    @classmethod
    def get_all_flags(cls) -> dict:
        return {
            name: getattr(cls, name)
            for name in dir(cls)
            if name.startswith('FEATURE_')
        }


feature_flags = FeatureFlags()
