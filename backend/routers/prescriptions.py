import os
import uuid
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlmodel import Session, select

from database import get_session
from models import Prescription, User
from services.auth import get_current_user

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])

UPLOAD_DIR = Path(os.getenv("RXGUARD_UPLOAD_DIR", str(Path(__file__).resolve().parent.parent / "uploads")))
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_EXTRACTED_TEXT_LENGTH = 50_000


def prescription_response(prescription: Prescription) -> dict:
    data = prescription.model_dump(exclude={"extracted_medications_json", "image_path"})
    data["extracted_medications"] = prescription.extracted_medications
    data["has_image"] = bool(prescription.image_path)
    return data


def _owned_prescription(prescription_id: int, user: User, session: Session) -> Prescription:
    prescription = session.get(Prescription, prescription_id)
    if not prescription or prescription.user_id != user.id:
        raise HTTPException(404, "Prescription not found")
    return prescription


@router.post("", status_code=201)
async def upload_prescription(
    file: UploadFile = File(...),
    prescription_date: date = Form(...),
    doctor_name: Optional[str] = Form(default=None, max_length=120),
    extracted_text: Optional[str] = Form(default=None, max_length=MAX_EXTRACTED_TEXT_LENGTH),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    content = await file.read()
    if not content:
        raise HTTPException(422, "Uploaded file is empty")
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(422, f"File too large (max {MAX_FILE_SIZE // 1024 // 1024}MB)")

    ext = Path(file.filename or "prescription").suffix
    stored_name = f"{current_user.id}/{uuid.uuid4().hex}{ext}"
    stored_path = UPLOAD_DIR / stored_name
    stored_path.parent.mkdir(parents=True, exist_ok=True)
    stored_path.write_bytes(content)

    prescription = Prescription(
        user_id=current_user.id,
        doctor_name=(doctor_name or "").strip() or None,
        prescription_date=prescription_date,
        image_path=stored_name,
        image_filename=file.filename or "prescription",
        image_content_type=file.content_type or "",
        extracted_text=extracted_text,
        analyzed=False,
    )
    session.add(prescription)
    try:
        session.commit()
        session.refresh(prescription)
    except Exception:
        stored_path.unlink(missing_ok=True)
        session.rollback()
        raise HTTPException(500, "Failed to save prescription")

    return prescription_response(prescription)


@router.get("")
def list_prescriptions(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    prescriptions = session.exec(
        select(Prescription)
        .where(Prescription.user_id == current_user.id)
        .order_by(Prescription.prescription_date.desc(), Prescription.id.desc())  # type: ignore[union-attr]
    ).all()
    return [prescription_response(p) for p in prescriptions]


@router.get("/{prescription_id}")
def get_prescription(
    prescription_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return prescription_response(_owned_prescription(prescription_id, current_user, session))


@router.get("/{prescription_id}/image")
def download_prescription_image(
    prescription_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    prescription = _owned_prescription(prescription_id, current_user, session)
    if not prescription.image_path:
        raise HTTPException(404, "Prescription has no image")

    file_path = UPLOAD_DIR / prescription.image_path
    if not file_path.exists():
        raise HTTPException(404, "File data missing")

    return FileResponse(
        path=str(file_path),
        filename=prescription.image_filename or file_path.name,
        media_type=prescription.image_content_type or "application/octet-stream",
    )
