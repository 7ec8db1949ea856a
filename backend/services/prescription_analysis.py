from __future__ import annotations

import logging
from functools import partial

from fastapi import HTTPException
from sqlmodel import Session, select

from models import Medication, MedicationStatus, Prescription
from services.interaction_classifier import InteractionClassifier
from services.interaction_scanner import ScanResult, scan_interactions
from services.interaction_writer import persist_interaction
from services.llm_gateway import LLMGatewayClient, LLMGatewayError
from services.medication_set import build_candidate_set, split_extracted_lines

MAX_EXTRACTED_TEXT_LENGTH = 50_000

EXTRACTION_SYSTEM_PROMPT = (
    "You are a medical prescription analyzer. Extract all medication names from the given "
    "prescription text. Return only medication names, one per line, without dosages or instructions."
)

logger = logging.getLogger("rxguard.analysis")


def validate_extracted_text(extracted_text) -> str:
    if not extracted_text or not isinstance(extracted_text, str):
        raise HTTPException(400, "extractedText is required and must be a string")
    if len(extracted_text) > MAX_EXTRACTED_TEXT_LENGTH:
        raise HTTPException(400, f"extractedText must be less than {MAX_EXTRACTED_TEXT_LENGTH} characters")
    return extracted_text.strip()


def validate_prescription_id(prescription_id) -> int:
    if isinstance(prescription_id, bool) or prescription_id is None:
        raise HTTPException(400, "prescriptionId is required and must be a positive integer")
    if isinstance(prescription_id, str) and prescription_id.strip().isdigit():
        prescription_id = int(prescription_id.strip())
    if not isinstance(prescription_id, int) or prescription_id <= 0:
        raise HTTPException(400, "prescriptionId is required and must be a positive integer")
    return prescription_id


def list_active_medication_names(user_id: int, session: Session) -> list[str]:
    rows = session.exec(
        select(Medication)
        .where(Medication.user_id == user_id, Medication.status == MedicationStatus.ACTIVE)
        .order_by(Medication.created_at.asc())  # type: ignore[union-attr]
    ).all()
    return [row.medication_name for row in rows]


async def extract_medication_names(llm: LLMGatewayClient, extracted_text: str) -> list[str]:
    try:
        response = await llm.complete(
            EXTRACTION_SYSTEM_PROMPT,
            f"Extract medication names from this prescription:\n\n{extracted_text}",
        )
    except LLMGatewayError as exc:
        logger.error("Medication extraction failed: %s", exc)
        raise HTTPException(500, "Failed to analyze prescription with AI") from exc
    return split_extracted_lines(response.content)


def _save_prescription(prescription: Prescription, session: Session, label: str) -> None:
    session.add(prescription)
    try:
        session.commit()
        session.refresh(prescription)
    except Exception:
        session.rollback()
        logger.exception("Error saving %s for prescription_id=%s", label, prescription.id)


async def analyze_prescription(
    *,
    prescription: Prescription,
    user_id: int,
    extracted_text: str,
    session: Session,
    llm: LLMGatewayClient,
    classifier: InteractionClassifier,
) -> dict:
    logger.info("Analyzing prescription_id=%s for user_id=%s", prescription.id, user_id)

    existing = list_active_medication_names(user_id, session)
    extracted = await extract_medication_names(llm, extracted_text)
    logger.info("Extracted %d medications from prescription_id=%s", len(extracted), prescription.id)

    prescription.extracted_medications = extracted
    _save_prescription(prescription, session, "extracted medications")

    candidates = build_candidate_set(existing, extracted)
    result: ScanResult = await scan_interactions(
        candidates,
        user_id,
        classifier=classifier,
        persist=partial(persist_interaction, session),
    )

    prescription.analyzed = True
    _save_prescription(prescription, session, "analyzed flag")

    return {
        "success": True,
        "interactions": [item.to_payload() for item in result.interactions],
        "extractedMedications": extracted,
        "degradedPairs": result.degraded_pairs,
    }
