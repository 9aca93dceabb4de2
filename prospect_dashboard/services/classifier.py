"""
Conversation Classifier

Classifies one conversation transcript into OEC / OWWA / travel-visa prospect
and conversion flags with confidences, through an OpenAI-compatible chat
completions endpoint (OpenAI directly, or DeepSeek via OpenRouter).

Failures never raise out of ``classify``: timeouts, HTTP errors and
unparseable replies all come back as an unsuccessful ClassificationResult
carrying the error text, which the processing run records on the
conversation.
"""

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from prospect_dashboard.core.config import Settings, get_settings
from prospect_dashboard.models import ClassificationResult

logger = logging.getLogger(__name__)


# =============================================================================
# Pricing
# =============================================================================

# USD per 1M tokens: (input, output)
PRICING: Dict[str, Tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "deepseek/deepseek-chat": (0.14, 0.28),
    "deepseek-chat": (0.14, 0.28),
}


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD of one call; unknown models cost 0."""
    prices = PRICING.get(model) or PRICING.get(model.split("/")[-1])
    if prices is None:
        logger.warning(f"No pricing for model {model}")
        return 0.0
    input_price, output_price = prices
    return (input_tokens * input_price + output_tokens * output_price) / 1_000_000


# =============================================================================
# Prompt
# =============================================================================

SYSTEM_PROMPT = (
    "You are a precise analyst of customer chat transcripts. "
    "Reply with a single valid JSON object and nothing else: no markdown, no explanations."
)

ANALYSIS_PROMPT = """Analyze the full chat transcript between a customer of a maid placement agency in the UAE and its chatbot.
Decide whether the customer is a prospect, and whether they converted, for each service below.

Rules:
- Read the entire conversation. Mark TRUE only when the intent is explicit and unambiguous.
- A conversion can only be TRUE when the matching prospect is TRUE.
- Confidence values are between 0.00 and 1.00.

Services:
1. OEC (Overseas Employment Certificate): the maid travels to the PHILIPPINES on vacation or leave and the
   customer asks for the OEC or its prerequisites (OEC, BM, OEC exemption, DMW, contract verification).
   Hiring or new contracts alone do not count. Converted: the customer agrees to proceed, book or pay.
2. OWWA: the customer explicitly asks about OWWA registration, renewal, benefits or coverage.
   Converted: the customer confirms proceeding with registration, renewal or payment.
3. Travel visa (NOT the Philippines): the customer asks about a visa or travel documents for the maid and
   explicitly names a destination other than the Philippines. UAE recruitment visas do not count.
   List every named destination in travelVisaCountries. Converted: the customer confirms proceeding or paying.

Return exactly:
{"isOECProspect": bool, "isOECProspectConfidence": number, "oecConverted": bool, "oecConvertedConfidence": number,
 "isOWWAProspect": bool, "isOWWAProspectConfidence": number, "owwaConverted": bool, "owwaConvertedConfidence": number,
 "isTravelVisaProspect": bool, "isTravelVisaProspectConfidence": number, "travelVisaCountries": [string],
 "travelVisaConverted": bool, "travelVisaConvertedConfidence": number}

Transcript:
"""

TRUNCATION_MARKER = "\n...[truncated]"

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


# =============================================================================
# Reply parsing
# =============================================================================

def truncate_messages(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def extract_json(content: str) -> Dict[str, Any]:
    """
    Pull the outermost JSON object out of a model reply.

    Raises:
        ValueError: If the reply holds no JSON object or it does not parse.
    """
    match = _JSON_OBJECT.search(content or "")
    if not match:
        raise ValueError("No JSON found in response")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Response JSON is not an object")
    return parsed


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number


def parse_classification(payload: Dict[str, Any], cost: float = 0.0) -> ClassificationResult:
    """Coerce a loosely typed reply into a ClassificationResult."""
    countries = payload.get("travelVisaCountries")
    if not isinstance(countries, list):
        countries = []
    return ClassificationResult(
        isOECProspect=bool(payload.get("isOECProspect")),
        isOECProspectConfidence=_number(payload.get("isOECProspectConfidence")),
        oecConverted=bool(payload.get("oecConverted")),
        oecConvertedConfidence=_number(payload.get("oecConvertedConfidence")),
        isOWWAProspect=bool(payload.get("isOWWAProspect")),
        isOWWAProspectConfidence=_number(payload.get("isOWWAProspectConfidence")),
        owwaConverted=bool(payload.get("owwaConverted")),
        owwaConvertedConfidence=_number(payload.get("owwaConvertedConfidence")),
        isTravelVisaProspect=bool(payload.get("isTravelVisaProspect")),
        isTravelVisaProspectConfidence=_number(payload.get("isTravelVisaProspectConfidence")),
        travelVisaCountries=[str(country).strip() for country in countries if str(country).strip()],
        travelVisaConverted=bool(payload.get("travelVisaConverted")),
        travelVisaConvertedConfidence=_number(payload.get("travelVisaConvertedConfidence")),
        success=True,
        cost=cost,
    )


# =============================================================================
# Classifiers
# =============================================================================

@dataclass
class BatchOutcome:
    """
    Results of one classify_batch call, keyed by record id in input order.

    Attributes:
        results: Finished results; exceptions are converted to failures.
        unfinished: Ids whose call was cancelled when the timeout ran out.
    """
    results: Dict[str, ClassificationResult] = field(default_factory=dict)
    unfinished: List[str] = field(default_factory=list)

    @property
    def timed_out(self) -> bool:
        return bool(self.unfinished)


class Classifier:
    """Base classifier. Subclasses implement ``classify``."""

    model: str = "none"

    async def classify(self, record_id: str, text: str) -> ClassificationResult:
        raise NotImplementedError

    async def classify_batch(
        self,
        items: Sequence[Tuple[str, str]],
        concurrency: int = 10,
        timeout: Optional[float] = None,
    ) -> BatchOutcome:
        """
        Classify ``(record_id, text)`` pairs with at most ``concurrency`` calls
        in flight.

        Empty transcripts fail with "No message text" without a call. Calls
        still running after ``timeout`` seconds are cancelled and reported in
        ``unfinished``.
        """
        outcome = BatchOutcome()
        if not items:
            return outcome

        semaphore = asyncio.Semaphore(concurrency)

        async def run(record_id: str, text: str) -> ClassificationResult:
            if not text.strip():
                return ClassificationResult.failure("No message text")
            async with semaphore:
                return await self.classify(record_id, text)

        tasks = [(record_id, asyncio.create_task(run(record_id, text))) for record_id, text in items]
        wait_timeout = None if timeout is None else max(timeout, 0.0)
        _, pending = await asyncio.wait([task for _, task in tasks], timeout=wait_timeout)

        if pending:
            logger.warning(f"Time budget reached with {len(pending)} classifications unfinished")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for record_id, task in tasks:
            if task in pending:
                outcome.unfinished.append(record_id)
                continue
            error = task.exception()
            if error is not None:
                logger.error(f"Classifier raised for {record_id}: {error}")
                outcome.results[record_id] = ClassificationResult.failure(str(error) or type(error).__name__)
            else:
                outcome.results[record_id] = task.result()
        return outcome

    async def close(self) -> None:
        return None


class LLMClassifier(Classifier):
    """
    Chat-completions classifier.

    Args:
        api_key: Bearer key of the provider.
        base_url: API root, e.g. ``https://openrouter.ai/api/v1``.
        model: Model name used for the call and for pricing.
        timeout: Per-call timeout in seconds.
        char_limit: Transcripts longer than this are truncated.
        client: Optional preconfigured httpx.AsyncClient (tests pass one
            with a MockTransport).
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        model: str,
        timeout: float = 60.0,
        char_limit: int = 8000,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.char_limit = char_limit
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": ANALYSIS_PROMPT + truncate_messages(text, self.char_limit)},
            ],
            "temperature": 0.1,
            "max_tokens": 300,
        }

    async def classify(self, record_id: str, text: str) -> ClassificationResult:
        if not self.api_key:
            logger.error(f"No API key configured for {self.model}")
            return ClassificationResult.failure(f"API key for {self.model} is not configured")

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=self.build_payload(text),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            data = response.json()

            usage = data.get("usage") or {}
            cost = calculate_cost(
                self.model,
                int(usage.get("prompt_tokens") or 0),
                int(usage.get("completion_tokens") or 0),
            )
            choices = data.get("choices") or []
            content = (choices[0].get("message") or {}).get("content") if choices else None
            result = parse_classification(extract_json(content or "{}"), cost)
            logger.debug(f"Classified {record_id} (${cost:.6f})")
            return result

        except httpx.TimeoutException:
            logger.error(f"Classification timed out for {record_id}")
            return ClassificationResult.failure("Request timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"Classification HTTP {e.response.status_code} for {record_id}")
            return ClassificationResult.failure(f"HTTP {e.response.status_code}: {e.response.text[:200]}")
        except httpx.HTTPError as e:
            logger.error(f"Classification request failed for {record_id}: {e}")
            return ClassificationResult.failure(str(e) or type(e).__name__)
        except ValueError as e:
            logger.error(f"Unparseable classification for {record_id}: {e}")
            return ClassificationResult.failure(str(e))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Factory
# =============================================================================

_classifier: Optional[Classifier] = None


def build_classifier(settings: Settings) -> LLMClassifier:
    """OpenAI when ``use_openai`` is set, otherwise DeepSeek through OpenRouter."""
    if settings.use_openai:
        return LLMClassifier(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout=settings.classification_timeout_seconds,
            char_limit=settings.message_char_limit,
        )
    return LLMClassifier(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        model=settings.openrouter_model,
        timeout=settings.classification_timeout_seconds,
        char_limit=settings.message_char_limit,
    )


def get_classifier() -> Classifier:
    global _classifier
    if _classifier is None:
        _classifier = build_classifier(get_settings())
        logger.info(f"Classifier ready: {_classifier.model}")
    return _classifier


async def close_classifier() -> None:
    global _classifier
    if _classifier is not None:
        await _classifier.close()
        _classifier = None
