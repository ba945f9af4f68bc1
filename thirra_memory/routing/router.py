"""Classify queries into cost tiers and pick the model for each tier."""

from __future__ import annotations

import logging
from enum import StrEnum
from time import perf_counter
from typing import TYPE_CHECKING, Literal, Protocol

from pydantic import BaseModel
from pydantic_ai import Agent

from thirra_memory import constants
from thirra_memory.config import RoutingSettings
from thirra_memory.core.llm import TRANSIENT_ERRORS, build_chat_model
from thirra_memory.core.utils import elapsed_ms
from thirra_memory.routing._prompt import CLASSIFICATION_PROMPT, NO_CONTEXT

if TYPE_CHECKING:
    from collections.abc import Sequence

    from thirra_memory.config import ProviderSettings
    from thirra_memory.memory.models import Message

LOGGER = logging.getLogger(__name__)


class QueryCategory(StrEnum):
    """Cost tier a query is routed to."""

    CODING = "coding"
    GENERAL = "general"
    HEAVY = "heavy"


CODING_KEYWORDS: tuple[str, ...] = (
    "code",
    "program",
    "function",
    "debug",
    "error",
    "bug",
    "implement",
    "algorithm",
    "javascript",
    "python",
    "java",
    "react",
    "api",
    "database",
    "class",
    "method",
    "variable",
    "syntax",
    "compile",
    "runtime",
)

HEAVY_KEYWORDS: tuple[str, ...] = (
    "research",
    "analyze",
    "resume",
    "cv",
    "report",
    "document",
    "thesis",
    "essay",
    "detailed",
    "comprehensive",
    "in-depth",
    "investigate",
    "compare",
    "evaluate",
    "assessment",
    "proposal",
    "presentation",
)

_REASONING: dict[QueryCategory, str] = {
    QueryCategory.CODING: "Coding task detected - using Claude for superior code quality",
    QueryCategory.GENERAL: "General query detected - using cost-effective DeepSeek",
    QueryCategory.HEAVY: "Heavy work detected - using GPT-4 for complex reasoning",
}
_UNKNOWN_REASONING = "Unknown category - defaulting to general model"


class ModelChoice(BaseModel):
    """Model picked for a category and why."""

    model_id: str
    reasoning: str


class ClassificationResult(BaseModel):
    """Routing decision for one query."""

    category: QueryCategory
    model_id: str
    reasoning: str
    latency_ms: float
    source: Literal["model", "keywords"] = "model"


class CostEstimate(BaseModel):
    """Price of a routed request compared with always using the baseline model."""

    category: QueryCategory
    token_count: int
    baseline_price: float
    actual_price: float
    savings: float
    savings_percent: float

    def formatted(self) -> dict[str, str]:
        """Return dollar and percent strings for display."""
        return {
            "category": self.category.value,
            "baseline_price": f"${self.baseline_price:.6f}",
            "actual_price": f"${self.actual_price:.6f}",
            "savings": f"${self.savings:.6f}",
            "savings_percent": f"{self.savings_percent:.1f}%",
        }


class Classifier(Protocol):
    """Lightweight model call answering a classification prompt."""

    async def __call__(self, prompt: str) -> str:
        """Return the raw model answer."""
        ...


class PydanticAIClassifier:
    """Classifier backed by a pydantic_ai agent with a tiny token budget."""

    def __init__(self, provider: ProviderSettings, *, model: str) -> None:
        """Bind the classifier to an endpoint and model."""
        self.provider = provider
        self.model = model

    async def __call__(self, prompt: str) -> str:
        """Ask the classifier model for a category name."""
        agent = Agent(
            model=build_chat_model(self.provider, self.model, temperature=0.0, max_tokens=50),
            output_type=str,
            retries=0,
        )
        result = await agent.run(prompt)
        return result.output


def keyword_classify(query: str) -> QueryCategory:
    """Classify by substring keywords: coding first, then heavy, else general."""
    lowered = query.lower()
    if any(keyword in lowered for keyword in CODING_KEYWORDS):
        return QueryCategory.CODING
    if any(keyword in lowered for keyword in HEAVY_KEYWORDS):
        return QueryCategory.HEAVY
    return QueryCategory.GENERAL


def build_classification_prompt(query: str, recent_history: Sequence[Message] = ()) -> str:
    """Render the classification prompt with recent history as context."""
    context = "\n".join(f"{m.role.value}: {m.content}" for m in recent_history)
    return CLASSIFICATION_PROMPT.format(context=context or NO_CONTEXT, query=query)


def estimate_cost_savings(category: QueryCategory | str, token_count: int) -> CostEstimate:
    """Compare a category's per-token price with the always-expensive baseline."""
    try:
        category = QueryCategory(category)
    except ValueError:
        category = QueryCategory.GENERAL
    actual_rate = constants.CATEGORY_COST_PER_MILLION[category.value]
    baseline_price = constants.BASELINE_COST_PER_MILLION * token_count / 1_000_000
    actual_price = actual_rate * token_count / 1_000_000
    savings = baseline_price - actual_price
    return CostEstimate(
        category=category,
        token_count=token_count,
        baseline_price=baseline_price,
        actual_price=actual_price,
        savings=savings,
        savings_percent=savings / baseline_price * 100 if baseline_price else 0.0,
    )


class QueryRouter:
    """Route each query to the cheapest model tier that fits it."""

    def __init__(
        self,
        settings: RoutingSettings | None = None,
        *,
        classifier: Classifier | None = None,
    ) -> None:
        """Use the given model table; without a classifier only keywords are used."""
        self.settings = settings or RoutingSettings()
        self.classifier = classifier

    async def classify(
        self,
        query: str,
        recent_history: Sequence[Message] = (),
    ) -> tuple[QueryCategory, Literal["model", "keywords"]]:
        """Return the category for a query and whether the model or keywords decided it."""
        if self.classifier is None:
            return keyword_classify(query), "keywords"
        window = self.settings.history_messages
        recent = list(recent_history)[-window:] if window else []
        try:
            answer = await self.classifier(build_classification_prompt(query, recent))
        except TRANSIENT_ERRORS:
            LOGGER.warning("Classification failed; using keyword fallback", exc_info=True)
            return keyword_classify(query), "keywords"
        label = answer.strip().lower()
        try:
            return QueryCategory(label), "model"
        except ValueError:
            LOGGER.warning("Invalid classification %r, defaulting to general", label)
            return QueryCategory.GENERAL, "model"

    def select_model(self, category: QueryCategory | str) -> ModelChoice:
        """Look up the model configured for a category."""
        table = {
            QueryCategory.CODING: self.settings.coding_model,
            QueryCategory.GENERAL: self.settings.general_model,
            QueryCategory.HEAVY: self.settings.heavy_model,
        }
        try:
            known = QueryCategory(category)
        except ValueError:
            return ModelChoice(model_id=self.settings.general_model, reasoning=_UNKNOWN_REASONING)
        return ModelChoice(model_id=table[known], reasoning=_REASONING[known])

    async def route(
        self,
        query: str,
        recent_history: Sequence[Message] = (),
    ) -> ClassificationResult:
        """Classify the query and pick its model."""
        start = perf_counter()
        category, source = await self.classify(query, recent_history)
        choice = self.select_model(category)
        latency = elapsed_ms(start)
        preview = query[:50] + ("..." if len(query) > 50 else "")  # noqa: PLR2004
        LOGGER.info(
            "Routed query %r to %s (%s, via %s) in %.1f ms",
            preview,
            choice.model_id,
            category.value,
            source,
            latency,
        )
        return ClassificationResult(
            category=category,
            model_id=choice.model_id,
            reasoning=choice.reasoning,
            latency_ms=latency,
            source=source,
        )
