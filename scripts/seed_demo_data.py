#!/usr/bin/env python3
"""
Seed script to create a demo patient and demo clinic staff accounts.
Run with: python -m scripts.seed_demo_data
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError

from app.core.database import SessionLocal
from app.core.security import get_password_hash
from app.models import Admin, User

DEMO_PASSWORD = "Demo12345"

DEMO_USERS = [
    {"full_name": "Demo Patient", "email": "patient@democlinic.com", "phone": "+963911234567"},
]

DEMO_ADMINS = [
    {"full_name": "Demo Doctor", "email": "doctor@democlinic.com", "phone": "+963922345678", "role": "doctor"},
    {"full_name": "Demo Secretary", "email": "secretary@democlinic.com", "phone": "+963933456789", "role": "secretary"},
]


def _seed(db, model, rows) -> int:
    created = 0
    for row in rows:
        if db.query(model).filter(model.email == row["email"]).first():
            print(f"{model.__name__} {row['email']} already exists. Skipping.")
            continue
        db.add(model(password_hash=get_password_hash(DEMO_PASSWORD), **row))
        created += 1
    return created


def create_demo_data():
    """Create demo accounts."""
    db = SessionLocal()

    try:
        users = _seed(db, User, DEMO_USERS)
        admins = _seed(db, Admin, DEMO_ADMINS)
        db.commit()

        print("\n" + "=" * 50)
        print("Demo accounts created successfully!")
        print("=" * 50)
        print(f"Users created: {users}")
        print(f"Admins created: {admins}")
        print(f"\nPassword for all demo accounts: {DEMO_PASSWORD}")
        for row in DEMO_USERS + DEMO_ADMINS:
            print(f"  {row['email']}")
        print("=" * 50)

    except SQLAlchemyError as e:
        db.rollback()
        print(f"Error creating demo data: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    create_demo_data()
