# scripts/seed.py

import os
import sys
import argparse
from datetime import datetime, time, timedelta

from dotenv import load_dotenv
from sqlmodel import Session, select

# Ensure root path for relative imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import engine, create_db_and_tables
from models.models import ClassSession, PlanOption, Student, TrainingClass, utcnow

# ✅ Load environment variables
load_dotenv()


DEMO_CLASSES = [
    {
        "title": "Cross Training de Potência",
        "description": "Aula combinando força, técnica e condicionamento avançado.",
        "capacity": 16,
        "schedule": [
            {"day": "Seg", "start": "06:00", "end": "07:00", "location": "Área principal"},
            {"day": "Qua", "start": "18:00", "end": "19:00", "location": "Área principal"},
        ],
    },
    {
        "title": "Técnica de Snatch",
        "description": "Sessão voltada para técnica detalhada de levantamento olímpico.",
        "capacity": 10,
        "schedule": [
            {"day": "Ter", "start": "12:00", "end": "13:00", "location": "Plataforma de LPO"},
            {"day": "Qui", "start": "19:00", "end": "20:15", "location": "Plataforma de LPO"},
        ],
    },
]

# name, weekly classes, months, monthly price, upfront price (cents)
DEMO_PLANS = [
    ("2x por semana", 2, 1, 18900, 18900),
    ("3x por semana", 3, 1, 22900, 22900),
    ("Livre trimestral", 6, 3, 26900, 72600),
]

DEMO_STUDENTS = [
    ("demo-student-1", "Fulano de Tal", "fulano@demo.com"),
    ("demo-student-2", "Beltrana Souza", "beltrana@demo.com"),
]

WEEKDAYS = {"Seg": 0, "Ter": 1, "Qua": 2, "Qui": 3, "Sex": 4, "Sab": 5, "Dom": 6}


def _upcoming_sessions(training_class: TrainingClass, days: int = 14):
    """Concrete sessions for the class schedule over the next ``days`` days."""
    today = utcnow().date()
    for offset in range(days):
        day = today + timedelta(days=offset)
        for slot in training_class.schedule:
            if WEEKDAYS.get(slot["day"]) != day.weekday():
                continue
            start = datetime.combine(day, time.fromisoformat(slot["start"]))
            end = datetime.combine(day, time.fromisoformat(slot["end"]))
            yield ClassSession(
                class_id=training_class.id,
                start_time=start,
                end_time=end,
                capacity=training_class.capacity,
                location=slot.get("location", ""),
            )


def _seed_plan_options(session: Session) -> None:
    for name, weekly, months, monthly, upfront in DEMO_PLANS:
        if session.exec(select(PlanOption).where(PlanOption.name == name)).first():
            continue
        session.add(
            PlanOption(
                name=name,
                weekly_classes=weekly,
                duration_months=months,
                price_monthly=monthly,
                price_upfront=upfront,
            )
        )
    session.commit()


def seed_dev_data():
    """Seed development database with demo classes, plans and students."""
    print("🌱 Seeding development data...")
    create_db_and_tables()

    with Session(engine) as session:
        # -----------------------------
        # 🏋️ Classes + upcoming sessions
        # -----------------------------
        for demo in DEMO_CLASSES:
            training_class = session.exec(
                select(TrainingClass).where(TrainingClass.title == demo["title"])
            ).first()
            if training_class:
                continue

            training_class = TrainingClass(**demo)
            session.add(training_class)
            session.commit()
            session.refresh(training_class)
            session.add_all(list(_upcoming_sessions(training_class)))
            session.commit()
            print(f"✅ Created class '{training_class.title}' with upcoming sessions")

        # -----------------------------
        # 📋 Plan options
        # -----------------------------
        _seed_plan_options(session)
        print("✅ Added plan options")

        # -----------------------------
        # 👥 Students
        # -----------------------------
        for principal_id, full_name, email in DEMO_STUDENTS:
            if session.exec(select(Student).where(Student.principal_id == principal_id)).first():
                continue
            session.add(Student(principal_id=principal_id, full_name=full_name, email=email))
        session.commit()
        print("✅ Added sample students")
        print("🌱 Development data seeding complete.")


def seed_staging_data():
    """Seed staging database with plan options only."""
    print("🌱 Seeding staging data...")
    create_db_and_tables()

    with Session(engine) as session:
        _seed_plan_options(session)
        print("🌱 Staging data seeding complete.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the BoxFlow database.")
    parser.add_argument(
        "--env",
        choices=["dev", "staging"],
        default="dev",
        help="Select environment to seed (dev or staging)",
    )
    args = parser.parse_args()

    if args.env == "dev":
        seed_dev_data()
    elif args.env == "staging":
        seed_staging_data()
