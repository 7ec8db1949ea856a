from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import Medication, MedicationStatus, User
from services.auth import get_current_user

router = APIRouter(prefix="/medications", tags=["medications"])


class MedicationCreate(BaseModel):
    medication_name: str = Field(min_length=1, max_length=200)
    dosage: str = Field(default="", max_length=100)
    frequency: str = Field(default="", max_length=100)
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class MedicationUpdate(BaseModel):
    dosage: Optional[str] = Field(default=None, max_length=100)
    frequency: Optional[str] = Field(default=None, max_length=100)
    end_date: Optional[date] = None
    status: Optional[MedicationStatus] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


def _owned_medication(medication_id: int, user: User, session: Session) -> Medication:
    medication = session.get(Medication, medication_id)
    if not medication or medication.user_id != user.id:
        raise HTTPException(404, "Medication not found")
    return medication


def _validate_dates(start_date: date, end_date: Optional[date]):
    if end_date is not None and end_date < start_date:
        raise HTTPException(422, "end_date cannot be before start_date")


@router.get("")
def list_medications(
    status: Optional[MedicationStatus] = Query(default=MedicationStatus.ACTIVE),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    query = select(Medication).where(Medication.user_id == current_user.id)
    if status is not None:
        query = query.where(Medication.status == status)
    rows = session.exec(query.order_by(Medication.created_at.desc())).all()  # type: ignore[union-attr]
    return [row.model_dump() for row in rows]


@router.post("", status_code=201)
def create_medication(
    body: MedicationCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    name = body.medication_name.strip()
    if not name:
        raise HTTPException(422, "Medication name cannot be empty")
    _validate_dates(body.start_date, body.end_date)

    medication = Medication(
        user_id=current_user.id,
        medication_name=name,
        dosage=body.dosage.strip(),
        frequency=body.frequency.strip(),
        start_date=body.start_date,
        end_date=body.end_date,
        status=MedicationStatus.ACTIVE,
        notes=(body.notes or "").strip() or None,
    )
    session.add(medication)
    try:
        session.commit()
        session.refresh(medication)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to add medication")

    return medication.model_dump()


@router.patch("/{medication_id}")
def update_medication(
    medication_id: int,
    body: MedicationUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    medication = _owned_medication(medication_id, current_user, session)
    changes = body.model_dump(exclude_unset=True)
    if "end_date" in changes:
        _validate_dates(medication.start_date, changes["end_date"])
    for key, value in changes.items():
        if isinstance(value, str):
            value = value.strip()
        setattr(medication, key, value)

    session.add(medication)
    try:
        session.commit()
        session.refresh(medication)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to update medication")

    return medication.model_dump()


@router.delete("/{medication_id}")
def delete_medication(
    medication_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    medication = _owned_medication(medication_id, current_user, session)
    session.delete(medication)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to delete medication")
    return {"status": "deleted", "id": medication_id}
