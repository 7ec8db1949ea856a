from __future__ import annotations

import logging

from sqlmodel import Session

from models import DrugInteraction
from services.interaction_classifier import InteractionVerdict

logger = logging.getLogger("rxguard.interactions")


def persist_interaction(
    session: Session,
    user_id: int,
    medication_1: str,
    medication_2: str,
    verdict: InteractionVerdict,
) -> DrugInteraction | None:
    """Append one interaction row. Failures are logged and never retried."""
    if not verdict.has_interaction:
        return None

    record = DrugInteraction(
        user_id=user_id,
        medication_1=medication_1,
        medication_2=medication_2,
        risk_level=verdict.risk_level,
        risk_percentage=verdict.risk_percentage,
        description=verdict.description,
        severity=verdict.severity,
    )
    try:
        session.add(record)
        session.commit()
        session.refresh(record)
    except Exception:
        session.rollback()
        logger.exception(
            "Error saving interaction user_id=%s pair=%r/%r", user_id, medication_1, medication_2
        )
        return None
    return record
