"""
Spending Insights Agent

DESIGN DECISION: Insights come from Gemini, but the model only ever sees
the transactions we hand it. It does not read the ledger, and nothing it
returns is written back.

CRITICAL BOUNDARIES:
- CAN: Summarize spending patterns, suggest savings and budgeting habits
- CANNOT: Modify accounts or transactions
- CANNOT: Invent transactions that were not in the input

The model is occasionally overloaded (HTTP 503). Those calls are retried
with exponential backoff; any other failure surfaces immediately.
"""

from typing import Iterable, Literal, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from assetflow.config import get_settings
from assetflow.models.ledger import (
    ExpenditureTransaction,
    IncomeTransaction,
    Transaction,
)


logger = structlog.get_logger(__name__)


class InsightError(Exception):
    """Raised when insights could not be generated."""
    pass


class InsufficientDataError(InsightError):
    """Raised when there are too few transactions to analyze."""

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(
            f"You need at least {required} transactions to generate meaningful insights "
            f"(found {available})"
        )


class InsightTransaction(BaseModel):
    """One transaction as presented to the model."""

    date: str = Field(description="The date of the transaction (YYYY-MM-DD)")
    time: str = Field(description="The time of the transaction (HH:MM)")
    account: str = Field(description="The account used for the transaction")
    amount: float = Field(description="The amount of the transaction")
    remarks: str = Field(default="", description="Optional remarks")
    type: Literal["income", "expenditure"]


class SpendingInsights(BaseModel):
    """Free-text insights generated from the transaction history."""

    insights: str


def to_insight_transactions(transactions: Iterable[Transaction]) -> list[InsightTransaction]:
    """
    Convert ledger transactions into the agent's input rows.

    Only income and expenditure are analyzed; account creations and
    transfers do not describe spending.
    """
    rows = []
    for tx in transactions:
        if not isinstance(tx, (IncomeTransaction, ExpenditureTransaction)):
            continue
        rows.append(
            InsightTransaction(
                date=tx.date.strftime("%Y-%m-%d"),
                time=tx.date.strftime("%H:%M"),
                account=tx.account_name or "Unknown Asset",
                amount=float(tx.amount),
                remarks=tx.remarks,
                type=tx.type,
            )
        )
    return rows


def _is_overloaded(error: BaseException) -> bool:
    """True for errors that mean the model is temporarily unavailable."""
    if isinstance(error, (google_exceptions.ServiceUnavailable, google_exceptions.TooManyRequests)):
        return True
    return getattr(error, "code", None) == 503 or getattr(error, "status", None) == 503


def _log_retry(retry_state) -> None:
    logger.warning(
        "insight_model_overloaded",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


class SpendingInsightsAgent:
    """
    AI agent that turns a transaction history into savings advice.

    RESPONSIBILITIES:
    - Format the transaction history into a prompt
    - Call Gemini, retrying while the model is overloaded
    - Return the text verbatim
    """

    def __init__(self, model=None, wait: Optional[wait_base] = None):
        self._settings = get_settings().gemini
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=8)
        self._model = model if model is not None else self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @staticmethod
    def build_prompt(transactions: list[InsightTransaction]) -> str:
        lines = "\n".join(
            f"  - Date: {t.date}, Time: {t.time}, Asset: {t.account}, "
            f"Amount: {t.amount}, Remarks: {t.remarks}, Type: {t.type}"
            for t in transactions
        )
        return f"""You are a personal finance advisor. Analyze the following transaction history and provide personalized insights to help the user improve their financial habits.

Transaction History:
{lines}

Provide insights such as potential savings opportunities, unusual spending patterns, and suggestions for budgeting."""

    async def _generate(self, prompt: str) -> str:
        retrying = retry(
            retry=retry_if_exception(_is_overloaded),
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=self._wait,
            before_sleep=_log_retry,
            reraise=True,
        )

        @retrying
        async def call() -> str:
            response = await self._model.generate_content_async(prompt)
            return response.text

        return await call()

    async def generate_insights(
        self,
        transactions: list[InsightTransaction],
    ) -> SpendingInsights:
        """
        Generate spending insights for the given transactions.

        Raises:
            InsightError: The model failed or returned nothing.
        """
        prompt = self.build_prompt(transactions)
        try:
            text: Optional[str] = await self._generate(prompt)
        except Exception as e:
            logger.error("insight_generation_failed", error=str(e))
            raise InsightError(f"Failed to generate insights: {e}") from e

        if not text or not text.strip():
            raise InsightError("The model returned no insights")

        return SpendingInsights(insights=text.strip())
