"""
Token counting, cost estimation and usage tracking.

OpenAI prices are quoted per 1K tokens, Gemini prices per token; both are
normalised so ``cost`` is always in dollars.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import httpx
import tiktoken

from assistant_hub import config
from assistant_hub.exceptions import ValidationError
from assistant_hub.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)

# fallback for unknown models: $0.01 per 1K tokens, written in each table's own unit
OPENAI_DEFAULT_PRICES = {"input": 0.01, "output": 0.01}
GEMINI_DEFAULT_PRICES = {"input": 0.00001, "output": 0.00001}

# price per 1K tokens
OPENAI_PRICES = {
    "gpt-4o": {"input": 0.0025, "output": 0.01},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-4-1106-preview": {"input": 0.01, "output": 0.03},
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
    "o1": {"input": 0.015, "output": 0.06},
    "o3-mini": {"input": 0.0011, "output": 0.0044},
}

# price per token
GEMINI_PRICES = {
    "gemini-1.5-flash": {"input": 0.000000075, "output": 0.0000003},
    "gemini-1.5-pro": {"input": 0.00000125, "output": 0.000005},
    "gemini-2.0-flash": {"input": 0.0000001, "output": 0.0000004},
}

PRICE_TABLES = {
    "openai": (OPENAI_PRICES, 1000, OPENAI_DEFAULT_PRICES),
    "gemini": (GEMINI_PRICES, 1, GEMINI_DEFAULT_PRICES),
}

FALLBACK_ENCODING = "o200k_base"


@dataclass
class UsageEstimate:
    input_tokens: int
    output_tokens: int
    total_tokens: int
    input_price: float
    output_price: float
    cost: float


def flatten_output(output: Any) -> str:
    """Concatenate every leaf of a nested structure in document order."""
    if output is None:
        return ""
    if isinstance(output, (list, tuple)):
        return "".join(flatten_output(item) for item in output)
    if isinstance(output, dict):
        return "".join(flatten_output(value) for value in output.values())
    return str(output)


class OpenAITokenCounter:
    """Counts tokens locally with tiktoken."""

    async def count(self, text: str, model: str) -> int:
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            encoding = tiktoken.get_encoding(FALLBACK_ENCODING)
        return len(encoding.encode(text))


class GeminiTokenCounter:
    """Counts tokens through the Gemini ``countTokens`` endpoint."""

    def __init__(self, http_client: httpx.AsyncClient, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.http_client = http_client
        self.api_key = config.GEMINI_API_KEY if api_key is None else api_key
        self.base_url = (base_url or config.GEMINI_API_BASE).rstrip("/")

    async def count(self, text: str, model: str) -> int:
        if not text:
            return 0
        response = await self.http_client.post(
            f"{self.base_url}/models/{model}:countTokens",
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": text}]}]},
        )
        response.raise_for_status()
        return int(response.json().get("totalTokens", 0))


class UsageEstimator:
    """Token counts and cost for a prompt/response pair."""
    def __init__(self, counters: Dict[str, Any]):
        self.counters = counters

    async def estimate(self, input_text: str, output: Any, model: str, provider: str = "openai") -> UsageEstimate:
        if provider not in PRICE_TABLES or provider not in self.counters:
            raise ValidationError(f"Unsupported provider: {provider}")
        prices, scale, default_prices = PRICE_TABLES[provider]
        price = prices.get(model, default_prices)
        counter = self.counters[provider]
        input_tokens = await counter.count(input_text or "", model)
        output_tokens = await counter.count(flatten_output(output), model)
        cost = (input_tokens * price["input"] + output_tokens * price["output"]) / scale
        return UsageEstimate(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            input_price=price["input"],
            output_price=price["output"],
            cost=cost,
        )


class UsageTracker:
    """Persists usage records and keeps per-user token totals."""
    def __init__(self, storage: FileStorage, estimator: UsageEstimator):
        self.storage = storage
        self.estimator = estimator

    async def record(self, user_id: str, assistant_id: str, thread_id: str, question: str, answer: Any,
                     model: str, provider: str = "openai") -> Dict[str, Any]:
        estimate = await self.estimator.estimate(question, answer, model, provider)
        record = self.storage.insert("usage", dict(
            asdict(estimate),
            user_id=user_id,
            assistant_id=assistant_id,
            thread_id=thread_id,
            model=model,
            provider=provider,
        ))
        self.storage.increment("users", user_id, "currentusertokens", estimate.total_tokens)
        return record

    def summary(self, user_id: str) -> Dict[str, Any]:
        records = self.storage.find("usage", user_id=user_id)
        user = self.storage.get("users", user_id) or {}
        return {
            "requests": len(records),
            "input_tokens": sum(r["input_tokens"] for r in records),
            "output_tokens": sum(r["output_tokens"] for r in records),
            "total_tokens": sum(r["total_tokens"] for r in records),
            "cost": sum(r["cost"] for r in records),
            "currentusertokens": user.get("currentusertokens", 0),
            "maxusertokens": user.get("maxusertokens", 0),
        }
