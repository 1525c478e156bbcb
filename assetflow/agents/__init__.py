"""AI Agents package."""

from assetflow.agents.insights import (
    InsightError,
    InsightTransaction,
    InsufficientDataError,
    SpendingInsights,
    SpendingInsightsAgent,
    to_insight_transactions,
)

__all__ = [
    "InsightError",
    "InsightTransaction",
    "InsufficientDataError",
    "SpendingInsights",
    "SpendingInsightsAgent",
    "to_insight_transactions",
]
