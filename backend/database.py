import os
from pathlib import Path

from sqlalchemy import inspect
from sqlmodel import SQLModel, Session, create_engine

DB_FILE = Path(os.getenv("RXGUARD_DB_FILE", str(Path(__file__).resolve().parent / "rxguard.db")))
DATABASE_URL = f"sqlite:///{DB_FILE}"

engine = create_engine(DATABASE_URL, echo=False)


REQUIRED_COLUMNS = {
    "user": {"id", "email", "password_hash", "is_active", "created_at"},
    "profile": {"id", "user_id", "full_name", "date_of_birth", "blood_type", "updated_at"},
    "medication": {
        "id",
        "user_id",
        "medication_name",
        "dosage",
        "frequency",
        "start_date",
        "end_date",
        "status",
        "notes",
        "created_at",
    },
    "prescription": {
        "id",
        "user_id",
        "doctor_name",
        "prescription_date",
        "image_path",
        "extracted_text",
        "extracted_medications_json",
        "analyzed",
        "created_at",
    },
    "druginteraction": {
        "id",
        "user_id",
        "medication_1",
        "medication_2",
        "risk_level",
        "risk_percentage",
        "description",
        "severity",
        "created_at",
    },
}


def _schema_needs_rebuild() -> bool:
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())

    for table_name, required_cols in REQUIRED_COLUMNS.items():
        if table_name not in existing_tables:
            continue
        existing_cols = {col["name"] for col in inspector.get_columns(table_name)}
        if not required_cols.issubset(existing_cols):
            return True

    return False


def create_db():
    if _schema_needs_rebuild():
        print("[DB] Schema mismatch detected. Rebuilding local SQLite schema.")
        SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
