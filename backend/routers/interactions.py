from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlmodel import Session, select

from database import get_session
from models import DrugInteraction, Prescription, User
from services.auth import get_current_user
from services.interaction_check import check_pair, validate_medication_pair
from services.interaction_classifier import InteractionClassifier
from services.llm_gateway import LLMGatewayClient
from services.prescription_analysis import (
    analyze_prescription,
    validate_extracted_text,
    validate_prescription_id,
)

router = APIRouter(prefix="/interactions", tags=["interactions"])

# Raw bodies: shape errors are 400 here, not the framework 422.
CHECK_BODY_EXAMPLE = {"medication1": "Aspirin", "medication2": "Warfarin"}
ANALYSIS_BODY_EXAMPLE = {"extractedText": "Rx: Aspirin 81mg daily", "prescriptionId": 1}


def _json_object(body: Any) -> dict:
    if not isinstance(body, dict):
        raise HTTPException(400, "Request body must be a JSON object")
    return body


def get_llm_gateway() -> LLMGatewayClient:
    return LLMGatewayClient()


def get_interaction_classifier(llm: LLMGatewayClient = Depends(get_llm_gateway)) -> InteractionClassifier:
    return InteractionClassifier(llm)


def _ensure_gateway_configured(llm: LLMGatewayClient):
    if not llm.configured:
        raise HTTPException(500, "AI gateway API key is not configured")


@router.post("/check")
async def check_interaction(
    body: Any = Body(default=None, examples=[CHECK_BODY_EXAMPLE]),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMGatewayClient = Depends(get_llm_gateway),
    classifier: InteractionClassifier = Depends(get_interaction_classifier),
):
    payload = _json_object(body)
    medication_1, medication_2 = validate_medication_pair(payload.get("medication1"), payload.get("medication2"))
    _ensure_gateway_configured(llm)

    verdict = await check_pair(
        user_id=current_user.id,
        medication_1=medication_1,
        medication_2=medication_2,
        classifier=classifier,
        session=session,
    )
    return verdict.to_payload()


@router.post("/analyze-prescription")
async def analyze_prescription_interactions(
    body: Any = Body(default=None, examples=[ANALYSIS_BODY_EXAMPLE]),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMGatewayClient = Depends(get_llm_gateway),
    classifier: InteractionClassifier = Depends(get_interaction_classifier),
):
    payload = _json_object(body)
    extracted_text = validate_extracted_text(payload.get("extractedText"))
    prescription_id = validate_prescription_id(payload.get("prescriptionId"))

    prescription = session.get(Prescription, prescription_id)
    if not prescription or prescription.user_id != current_user.id:
        raise HTTPException(404, "Prescription not found")
    _ensure_gateway_configured(llm)

    return await analyze_prescription(
        prescription=prescription,
        user_id=current_user.id,
        extracted_text=extracted_text,
        session=session,
        llm=llm,
        classifier=classifier,
    )


@router.get("")
def list_interactions(
    limit: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    rows = session.exec(
        select(DrugInteraction)
        .where(DrugInteraction.user_id == current_user.id)
        .order_by(DrugInteraction.created_at.desc(), DrugInteraction.id.desc())  # type: ignore[union-attr]
        .limit(limit)
    ).all()
    return [row.model_dump() for row in rows]
