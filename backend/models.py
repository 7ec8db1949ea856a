import json
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class MedicationStatus(str, Enum):
    ACTIVE = "active"
    DISCONTINUED = "discontinued"
    COMPLETED = "completed"


class ConditionStatus(str, Enum):
    ONGOING = "ongoing"
    RESOLVED = "resolved"
    CHRONIC = "chronic"


class AllergySeverity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class RiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    password_hash: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Profile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)
    full_name: str = ""
    date_of_birth: Optional[date] = None
    blood_type: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class MedicalHistory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    condition_name: str
    diagnosis_date: Optional[date] = None
    status: ConditionStatus = ConditionStatus.ONGOING
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Allergy(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    allergen: str
    severity: AllergySeverity = AllergySeverity.MILD
    reaction: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Medication(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    medication_name: str
    dosage: str = ""
    frequency: str = ""
    start_date: date
    end_date: Optional[date] = None
    status: MedicationStatus = Field(default=MedicationStatus.ACTIVE, index=True)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Prescription(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    doctor_name: Optional[str] = None
    prescription_date: date
    image_path: Optional[str] = None
    image_filename: Optional[str] = None
    image_content_type: str = ""
    extracted_text: Optional[str] = None
    extracted_medications_json: Optional[str] = None
    analyzed: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def extracted_medications(self) -> list[str] | None:
        if self.extracted_medications_json is None:
            return None
        return json.loads(self.extracted_medications_json)

    @extracted_medications.setter
    def extracted_medications(self, val: list[str] | None):
        self.extracted_medications_json = None if val is None else json.dumps(val)


class DrugInteraction(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    medication_1: str
    medication_2: str
    risk_level: RiskLevel = RiskLevel.NONE
    risk_percentage: float = 0
    description: str = ""
    severity: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
