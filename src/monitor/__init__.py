"""Quote/mention monitor."""

from .monitor import QuoteMentionMonitor, TickResult
from .quota import HourlyQuota

__all__ = ["QuoteMentionMonitor", "TickResult", "HourlyQuota"]
