"""Pairwise drug-interaction classification on top of the LLM gateway."""
from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from models import RiskLevel
from services.llm_gateway import LLMGatewayClient, LLMGatewayError

logger = logging.getLogger("rxguard.classifier")

SYSTEM_PROMPT = """You are a pharmaceutical expert. Analyze drug interactions between medications.
Return a JSON object with:
- hasInteraction (boolean)
- risk_level (string: "none", "low", "moderate", "high", "severe")
- risk_percentage (number: 0-100)
- description (string: detailed description of the interaction and effects)
- severity (string: clinical significance and recommendations)

Base your analysis on known drug interactions, pharmacological data, and clinical guidelines."""

FALLBACK_DESCRIPTION = "Unable to check interaction"
FALLBACK_SEVERITY = "Unknown"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class InteractionParseError(ValueError):
    """Classifier output is not a JSON object with a boolean hasInteraction."""


class InteractionVerdict(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_interaction: bool = Field(default=False, alias="hasInteraction")
    risk_level: RiskLevel = RiskLevel.NONE
    risk_percentage: int | float = Field(default=0, ge=0, le=100)
    description: str = ""
    severity: str = ""
    # set on placeholder verdicts, never serialized
    fallback: bool = Field(default=False, exclude=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def fallback_verdict() -> InteractionVerdict:
    return InteractionVerdict(
        has_interaction=False,
        risk_level=RiskLevel.NONE,
        risk_percentage=0,
        description=FALLBACK_DESCRIPTION,
        severity=FALLBACK_SEVERITY,
        fallback=True,
    )


def build_user_prompt(drug_a: str, drug_b: str) -> str:
    return (
        f"Analyze potential drug interaction between {drug_a} and {drug_b}. "
        "Provide detailed information about the interaction mechanism, clinical significance, "
        "and patient management recommendations."
    )


def _first_present(raw: dict, *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _coerce_risk_level(value: Any) -> RiskLevel:
    if isinstance(value, str):
        try:
            return RiskLevel(value.strip().lower())
        except ValueError:
            pass
    return RiskLevel.NONE


def _coerce_percentage(value: Any) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if math.isnan(value):
        return 0
    return min(100, max(0, value))


def _coerce_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def parse_verdict(content: str) -> InteractionVerdict:
    text = (content or "").strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise InteractionParseError("Classifier response is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise InteractionParseError("Classifier response is not a JSON object")

    has_interaction = _first_present(raw, "hasInteraction", "has_interaction")
    if not isinstance(has_interaction, bool):
        raise InteractionParseError("Classifier response is missing a boolean hasInteraction")

    return InteractionVerdict(
        has_interaction=has_interaction,
        risk_level=_coerce_risk_level(_first_present(raw, "risk_level", "riskLevel")),
        risk_percentage=_coerce_percentage(_first_present(raw, "risk_percentage", "riskPercentage")),
        description=_coerce_text(raw.get("description")),
        severity=_coerce_text(raw.get("severity")),
    )


class InteractionClassifier:
    def __init__(self, llm: LLMGatewayClient):
        self._llm = llm

    async def classify(self, drug_a: str, drug_b: str) -> InteractionVerdict:
        """Raises LLMGatewayError or InteractionParseError on failure."""
        response = await self._llm.complete(
            SYSTEM_PROMPT,
            build_user_prompt(drug_a, drug_b),
            json_mode=True,
        )
        return parse_verdict(response.content)

    async def classify_or_fallback(self, drug_a: str, drug_b: str) -> InteractionVerdict:
        try:
            return await self.classify(drug_a, drug_b)
        except (LLMGatewayError, InteractionParseError) as exc:
            logger.warning("Drug interaction check failed for %r/%r: %s", drug_a, drug_b, exc)
        except Exception:
            logger.exception("Unexpected classifier failure for %r/%r", drug_a, drug_b)
        return fallback_verdict()
