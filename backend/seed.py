import os
from datetime import date

from sqlmodel import Session, select

from database import engine, create_db
from models import (
    Allergy,
    AllergySeverity,
    ConditionStatus,
    MedicalHistory,
    Medication,
    Profile,
    User,
)
from services.auth import hash_password

DEMO_USERS = [
    {
        "full_name": "Maya Fernandes",
        "email": "maya@rxguard.local",
        "password": "maya-demo-123",
        "date_of_birth": date(1968, 4, 12),
        "blood_type": "O+",
    },
    {
        "full_name": "Tomas Lindqvist",
        "email": "tomas@rxguard.local",
        "password": "tomas-demo-123",
        "date_of_birth": date(1981, 11, 3),
        "blood_type": "A-",
    },
]

DEMO_MEDICATIONS = [
    {"medication_name": "Warfarin", "dosage": "5mg", "frequency": "Once daily"},
    {"medication_name": "Metformin", "dosage": "500mg", "frequency": "Twice daily"},
    {"medication_name": "Lisinopril", "dosage": "10mg", "frequency": "Once daily"},
]


def run_seed(seed_records: bool = False):
    create_db()

    with Session(engine) as session:
        existing_user = session.exec(select(User)).first()
        if existing_user:
            print("Database already seeded. Skipping.")
            return

        users: list[User] = []
        for entry in DEMO_USERS:
            user = User(email=entry["email"], password_hash=hash_password(entry["password"]))
            session.add(user)
            session.commit()
            session.refresh(user)
            session.add(
                Profile(
                    user_id=user.id,
                    full_name=entry["full_name"],
                    date_of_birth=entry["date_of_birth"],
                    blood_type=entry["blood_type"],
                )
            )
            session.commit()
            users.append(user)
            print(f"Created user: {user.email}")

        if seed_records:
            owner = users[0]
            for entry in DEMO_MEDICATIONS:
                session.add(Medication(user_id=owner.id, start_date=date.today(), **entry))
            session.add(
                Allergy(
                    user_id=owner.id,
                    allergen="Penicillin",
                    severity=AllergySeverity.SEVERE,
                    reaction="Hives, facial swelling",
                )
            )
            session.add(
                MedicalHistory(
                    user_id=owner.id,
                    condition_name="Atrial fibrillation",
                    diagnosis_date=date(2019, 6, 1),
                    status=ConditionStatus.CHRONIC,
                )
            )
            session.commit()
            print(f"  Seeded {len(DEMO_MEDICATIONS)} active medications for {owner.email}")
        else:
            print("No health records seeded (clean slate).")

        print("Demo credentials:")
        for entry in DEMO_USERS:
            print(f"  {entry['email']} / {entry['password']}")
        print("Seed complete.")


if __name__ == "__main__":
    run_seed(seed_records=os.getenv("RXGUARD_SEED_RECORDS", "0") == "1")
