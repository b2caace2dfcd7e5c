"""
Recommendation client backed by the OpenAI chat completions API.

Produces short, actionable text for anomalies, expiry risks and forecast
explanations. Recommendations are advisory: analytics results never depend
on them, and a missing key or a failed request yields None.
"""
import json
import logging
from typing import Any, Dict, Optional

from openai import OpenAI

from stockpulse.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = "You are a restaurant inventory management assistant."

ANOMALY_PROMPT = """An anomaly was detected in the inventory system. Please provide a brief, actionable recommendation (2-3 sentences max).

Anomaly Type: {anomaly_type}
Ingredient: {ingredient_name}
Details: {details}

Provide a concise recommendation to address this issue:"""

EXPIRY_PROMPT = """You are helping a restaurant reduce food waste.

Ingredient: {ingredient_name}
Current Stock: {current_stock} {unit}
Days Until Expiry: {days_until_expiry} days
Predicted Usage in that period: {predicted_usage} {unit}
Excess Stock at Risk: {excess} {unit}
Menu Items Using This Ingredient: {menu_items}

Provide a brief, actionable recommendation (2-3 sentences) to prevent waste. Suggest specific actions like promotions, specials, or alternative uses:"""

FORECAST_PROMPT = """Provide a brief explanation (2-3 sentences) for the following usage forecast.

Ingredient: {ingredient_name}
Forecasted Average Daily Usage: {average_forecast:.2f} {unit}
Current Stock: {current_stock} {unit}
Recent Usage Pattern: {recent_usage}

Explain the forecast briefly:"""


class RecommendationClient:
    """
    Text-generation collaborator for the analytics services.

    Built once per process and injected; no API key means every call
    returns None without touching the network.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        timeout: float = 15.0,
        max_retries: int = 1,
    ):
        self.model = model
        self.client = (
            OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries) if api_key else None
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RecommendationClient":
        settings = settings or get_settings()
        api_key = settings.OPENAI_API_KEY if settings.RECOMMENDATIONS_ENABLED else None
        return cls(
            api_key=api_key,
            model=settings.OPENAI_MODEL,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=settings.OPENAI_MAX_RETRIES,
        )

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _build_prompt(self, context: Dict[str, Any]) -> str:
        """
        Build the user prompt for a recommendation request.

        Args:
            context: Must contain ``kind`` ("anomaly", "expiry" or "forecast")
                     plus the fields that kind's template needs
        """
        kind = context.get("kind")

        if kind == "anomaly":
            return ANOMALY_PROMPT.format(
                anomaly_type=context["anomaly_type"],
                ingredient_name=context["ingredient_name"],
                details=json.dumps(context.get("details", {}), default=str),
            )

        if kind == "expiry":
            menu_items = context.get("menu_items") or []
            return EXPIRY_PROMPT.format(
                ingredient_name=context["ingredient_name"],
                current_stock=round(context["current_stock"], 2),
                unit=context.get("unit", "units"),
                days_until_expiry=context["days_until_expiry"],
                predicted_usage=round(context["predicted_usage"], 2),
                excess=round(max(0.0, context["current_stock"] - context["predicted_usage"]), 2),
                menu_items=", ".join(menu_items) or "None specified",
            )

        if kind == "forecast":
            return FORECAST_PROMPT.format(
                ingredient_name=context["ingredient_name"],
                average_forecast=context["average_forecast"],
                unit=context.get("unit", "units"),
                current_stock=round(context.get("current_stock", 0.0), 2),
                recent_usage=json.dumps(context.get("recent_usage", [])[:7], default=str),
            )

        raise ValueError(f"Unknown recommendation kind '{kind}'")

    def recommend(self, context: Dict[str, Any]) -> Optional[str]:
        """
        Generate a recommendation.

        Returns:
            The recommendation text, or None when the client is disabled
            or the request fails
        """
        if not self.client:
            return None

        prompt = self._build_prompt(context)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt}
                ],
                temperature=0.2,
                max_tokens=200,
            )
        except Exception as e:
            logger.warning("Recommendation request failed: %s", e)
            return None

        text = response.choices[0].message.content
        return text.strip() if text and text.strip() else None


def recommend_safely(recommender: Optional[RecommendationClient], context: Dict[str, Any]) -> Optional[str]:
    """Best-effort recommendation; any failure leaves the recommendation empty."""
    if recommender is None:
        return None
    try:
        return recommender.recommend(context)
    except Exception:
        logger.warning("Recommendation failed for %s", context.get("kind"), exc_info=True)
        return None
