"""Retry utilities with exponential backoff."""

import logging
from typing import Optional

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config_models import RetryConfig

logger = structlog.stdlib.get_logger(__name__)


def api_retry(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
    exceptions: tuple = (Exception,),
):
    """Retry decorator for external API calls.

    Only the listed exception types are retried; anything else propagates
    on the first attempt.

    Args:
        max_attempts: Max attempts including the first call
        min_wait: Min wait between retries (seconds)
        max_wait: Max wait between retries (seconds)
        exceptions: Exception types to retry on
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_from_config(config: Optional[RetryConfig] = None, exceptions: tuple = (Exception,)):
    """Create retry decorator from the retry config section.

    Args:
        config: RetryConfig (defaults when None)
        exceptions: Exception types to retry on

    Returns:
        Configured retry decorator
    """
    config = config or RetryConfig()
    return api_retry(
        max_attempts=config.max_attempts,
        min_wait=config.min_wait,
        max_wait=config.max_wait,
        exceptions=exceptions,
    )
