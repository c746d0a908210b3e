"""
OpenAI refinement of baseline maintenance forecasts.

Sends one bounded chat completion per vehicle and decodes the reply into
suggestions. Any provider failure is reported as ``None`` so the caller can
fall back to the baseline for that vehicle only; there are no retries.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from automatenance.config import settings
from automatenance.exceptions import ProviderError
from automatenance.predictions.features import FeatureSet
from automatenance.predictions.suggestions import Suggestion, dump_suggestions, parse_suggestions
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are Auto-Assist, a cautious maintenance advisor. Use provided context and "
    "user history. Provide non-binding suggestions. Do NOT claim "
    "manufacturer-authoritative schedules."
)


def build_prompt(
    vehicle: Dict[str, Any],
    features: FeatureSet,
    baseline: List[Suggestion],
    snippets: List[str],
    hint_chars: int = None,
) -> str:
    """
    Build the user prompt for one vehicle.

    Args:
        vehicle: Vehicle snapshot (make, model, year, mileage)
        features: FeatureSet for the vehicle
        baseline: Baseline suggestions, passed as a truncated hint
        snippets: Preformatted knowledge snippets
        hint_chars: Character budget for the baseline hint

    Returns:
        Prompt text
    """
    hint_chars = hint_chars or settings.BASELINE_HINT_CHARS
    year = vehicle.get("year") or "?"
    mileage = vehicle.get("mileage")
    mileage = mileage if mileage is not None else "unknown"
    context = "\n---\n".join(snippets)

    return "\n".join(
        [
            "You will output STRICT JSON array of items:",
            "{title, description, predicted_date?, predicted_mileage?, confidence (1-99), "
            "urgency ('high'|'medium'|'low'), refs?: string[]}",
            "Use only provided context. Non-binding advice; do not present as manufacturer schedule.",
            "",
            f"VEHICLE: {year} {vehicle.get('make')} {vehicle.get('model')}, mileage={mileage}",
            f"FEATURES: {json.dumps(features.to_dict())}",
            f"LOCAL_SUGGESTIONS: {json.dumps(dump_suggestions(baseline))[:hint_chars]}",
            f"CONTEXT:\n{context}" if context else "CONTEXT: (none)",
        ]
    )


class PredictionRefinementClient:
    """
    Chat-completion client that refines baseline forecasts.

    Example usage:
        client = PredictionRefinementClient(api_key="sk-...")
        suggestions = await client.refine(vehicle, features, baseline, snippets)
        if suggestions is None:
            ...  # provider failed, use baseline
    """

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
        timeout: float = None,
        client: AsyncOpenAI = None,
    ):
        """
        Initialize refinement client.

        Args:
            api_key: OpenAI API key
            model: Model identifier (default: settings.OPENAI_PREDICTION_MODEL)
            temperature: Sampling temperature (default: settings.OPENAI_TEMPERATURE)
            max_tokens: Completion token ceiling (default: settings.OPENAI_MAX_TOKENS)
            timeout: Request timeout in seconds (default: settings.OPENAI_TIMEOUT_SECONDS)
            client: Preconfigured AsyncOpenAI client
        """
        self.model = model or settings.OPENAI_PREDICTION_MODEL
        self.temperature = temperature if temperature is not None else settings.OPENAI_TEMPERATURE
        self.max_tokens = max_tokens or settings.OPENAI_MAX_TOKENS
        self.timeout = timeout or settings.OPENAI_TIMEOUT_SECONDS
        self.client = client or AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY,
            timeout=self.timeout,
            max_retries=0,
        )

        logger.info(f"PredictionRefinementClient initialized with model: {self.model}")

    async def complete(self, prompt: str) -> Optional[str]:
        """
        Send one chat completion and return the message text.

        Raises:
            ProviderError: On non-2xx status, timeout or connection failure
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except APITimeoutError as e:
            raise ProviderError(f"provider timed out after {self.timeout}s") from e
        except APIStatusError as e:
            raise ProviderError(f"provider returned HTTP {e.status_code}") from e
        except APIConnectionError as e:
            raise ProviderError(f"provider connection failed: {e}") from e
        except OpenAIError as e:
            raise ProviderError(str(e)) from e

        if not response.choices:
            return None
        return response.choices[0].message.content

    async def refine(
        self,
        vehicle: Dict[str, Any],
        features: FeatureSet,
        baseline: List[Suggestion],
        snippets: List[str],
    ) -> Optional[List[Suggestion]]:
        """
        Ask the provider for refined suggestions.

        Returns:
            Decoded suggestions (possibly empty), or None when the call failed
            or the reply could not be decoded
        """
        prompt = build_prompt(vehicle, features, baseline, snippets)

        try:
            text = await self.complete(prompt)
        except ProviderError as e:
            logger.warning(f"AI refinement failed for vehicle {vehicle.get('id')}: {e}")
            return None

        result = parse_suggestions(text)
        if not result.ok:
            logger.warning(
                f"AI refinement reply undecodable for vehicle {vehicle.get('id')}: {result.error}"
            )
            return None

        logger.info(
            f"AI refinement returned {len(result.suggestions)} suggestion(s) "
            f"for vehicle {vehicle.get('id')}"
        )
        return result.suggestions


def create_refinement_client() -> Optional[PredictionRefinementClient]:
    """Client from settings, or None when no API key is configured."""
    if not settings.OPENAI_API_KEY:
        logger.info("OPENAI_API_KEY not set - AI refinement disabled")
        return None
    return PredictionRefinementClient(api_key=settings.OPENAI_API_KEY)
