from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlmodel import Session

from services.interaction_classifier import InteractionClassifier, InteractionParseError, InteractionVerdict
from services.interaction_writer import persist_interaction
from services.llm_gateway import LLMGatewayError, LLMQuotaError, LLMRateLimitError

MAX_MEDICATION_NAME_LENGTH = 200

logger = logging.getLogger("rxguard.interactions")


def _validate_name(field: str, value) -> str:
    if not value or not isinstance(value, str) or not value.strip():
        raise HTTPException(400, f"{field} is required and must be a non-empty string")
    if len(value) > MAX_MEDICATION_NAME_LENGTH:
        raise HTTPException(400, f"{field} must be at most {MAX_MEDICATION_NAME_LENGTH} characters")
    return value.strip()


def validate_medication_pair(medication1, medication2) -> tuple[str, str]:
    return _validate_name("medication1", medication1), _validate_name("medication2", medication2)


async def check_pair(
    *,
    user_id: int,
    medication_1: str,
    medication_2: str,
    classifier: InteractionClassifier,
    session: Session,
) -> InteractionVerdict:
    logger.info("User %s checking interaction between %r and %r", user_id, medication_1, medication_2)
    try:
        verdict = await classifier.classify(medication_1, medication_2)
    except LLMRateLimitError as exc:
        raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, str(exc)) from exc
    except LLMQuotaError as exc:
        raise HTTPException(status.HTTP_402_PAYMENT_REQUIRED, str(exc)) from exc
    except (LLMGatewayError, InteractionParseError) as exc:
        logger.error("Interaction check failed: %s", exc)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc)) from exc

    if verdict.has_interaction:
        persist_interaction(session, user_id, medication_1, medication_2, verdict)
    return verdict
