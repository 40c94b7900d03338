import functools
import inspect
import os

import anthropic
import pytest


def _missing(required_vars):
    return [var for var in required_vars if not os.getenv(var)]


def skip_if_missing_env_vars(required_vars):
    """
    Decorator to skip tests if required environment variables are not set.

    Works for both plain and async test functions.

    Args:
        required_vars (list): List of environment variable names to check.
    """

    def skip(missing):
        pytest.skip(
            f"Missing required environment variables: {', '.join(missing)}. "
            "Ensure they are set in your environment or .env file."
        )

    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                missing = _missing(required_vars)
                if missing:
                    skip(missing)
                return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            missing = _missing(required_vars)
            if missing:
                skip(missing)
            return func(*args, **kwargs)

        return wrapper

    return decorator


def skip_on_auth_error(func):
    """
    Decorator to skip async tests when the Anthropic API rejects the key.

    Useful when a placeholder key is present in .env.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except anthropic.AuthenticationError:
            pytest.skip(
                "Anthropic API rejected ANTHROPIC_API_KEY. "
                "Set a valid key or skip integration tests."
            )

    return wrapper
