"""Aggregate exports for model convenience imports.

Prefer importing specific models from their modules.
"""

from .user import User, UserPublic  # noqa: F401
from .theme import (  # noqa: F401
    CompetitorAnalysis,
    Theme,
    ThemeCreate,
    ThemePublic,
    TrendData,
)
from .subscription import Subscription, SubscriptionPublic  # noqa: F401
from .score_history import ScoreHistory  # noqa: F401
from .processing import JobStatus, ProcessingJob  # noqa: F401
from .usage import UserUsage  # noqa: F401
