# stocksynapse/forecast.py
import json
import logging
import re
import time
from typing import Any, Callable, Dict, Optional

import requests

from .config import DEFAULT_API_BASE, DEFAULT_MODEL, Settings
from .errors import ConfigurationError, ForecastingError
from .models import Product

logger = logging.getLogger(__name__)

_KEY_PARAM = re.compile(r"key=[^&\s]+")

PROMPT_TEMPLATE = (
    "You are an expert inventory management analyst for a retail business. "
    "Analyze the following product and provide a brief sales forecast and restocking recommendation. "
    "Be concise and provide actionable advice. Assume a standard retail environment. "
    "Format your response clearly with headings for 'Forecast' and 'Recommendation'.\n\n"
    "Product Details:\n"
    "- Name: {name}\n"
    "- Category: {category}\n"
    "- Price: ${price:.2f}\n"
    "- Current Quantity in Stock: {quantity}\n\n"
    "Your Analysis:"
)


def build_prompt(product: Product) -> str:
    return PROMPT_TEMPLATE.format(
        name=product.name,
        category=product.category,
        price=product.price,
        quantity=product.quantity,
    )


def build_payload(prompt: str) -> Dict[str, Any]:
    return {"contents": [{"parts": [{"text": prompt}]}]}


def parse_forecast_response(body: str) -> str:
    """
    Pull candidates[0].content.parts[0].text out of a generateContent reply.
    Anything else (bad JSON, missing or empty levels, non-string text) is a
    ForecastingError that carries the raw body.
    """
    try:
        data = json.loads(body)
    except ValueError as e:
        raise ForecastingError(
            f"Error parsing JSON from Gemini API: {e}. Raw response: {body}", body=body
        ) from e

    text = None
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content")
        if isinstance(content, dict):
            parts = content.get("parts")
            if isinstance(parts, list) and parts and isinstance(parts[0], dict):
                text = parts[0].get("text")

    if not isinstance(text, str):
        raise ForecastingError(
            f"Could not find forecast text in Gemini API response. Raw response: {body}", body=body
        )
    return text


class ForecastClient:
    def __init__(self, api_key: Optional[str], model: str = DEFAULT_MODEL,
                 base_url: str = DEFAULT_API_BASE, timeout: float = 60.0,
                 max_attempts: int = 3, backoff_seconds: float = 30.0,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        if not api_key or not api_key.strip():
            raise ConfigurationError("API key for the Gemini API cannot be empty.")
        if max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ForecastClient":
        return cls(
            settings.require_api_key(),
            model=settings.gemini_model,
            base_url=settings.gemini_api_base,
            timeout=settings.forecast_timeout_seconds,
            max_attempts=settings.forecast_max_attempts,
            backoff_seconds=settings.forecast_backoff_seconds,
            **kwargs,
        )

    @staticmethod
    def _redact(text: str) -> str:
        # request URLs carry the key as a query parameter
        return _KEY_PARAM.sub("key=***", text)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate_forecast(self, product: Product) -> str:
        payload = build_payload(build_prompt(product))
        last_status = None

        for attempt in range(1, self.max_attempts + 1):
            last = attempt == self.max_attempts
            logger.debug("Forecast request for %s (attempt %d/%d, model %s)",
                         product.id, attempt, self.max_attempts, self.model)
            try:
                r = self.session.post(
                    self.endpoint,
                    params={"key": self.api_key},
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as e:
                reason = self._redact(str(e))
                if last:
                    logger.error("Network error talking to Gemini API, giving up: %s", reason)
                    raise ForecastingError(
                        f"Network error while communicating with Gemini API after "
                        f"{self.max_attempts} attempts: {reason}"
                    ) from e
                logger.warning("Network error talking to Gemini API (%s). Retrying...", reason)
                continue

            last_status = r.status_code
            if r.status_code == 429:
                if not last:
                    logger.warning("Quota exceeded. Retrying in %s seconds...", self.backoff_seconds)
                    self._sleep(self.backoff_seconds)
                continue
            if r.status_code != 200:
                logger.error("Gemini API returned status %d", r.status_code)
                raise ForecastingError(
                    f"Gemini API returned an error. Status: {r.status_code}\nResponse: {r.text}",
                    status_code=r.status_code,
                    body=r.text,
                )
            return parse_forecast_response(r.text)

        logger.error("Forecast for %s failed after %d attempts", product.id, self.max_attempts)
        raise ForecastingError("Failed to generate forecast after all retries.", status_code=last_status)
