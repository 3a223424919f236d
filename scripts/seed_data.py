"""
Seed script: admin user and default provincial tax rules.

What it creates:
- Admin user (active) with the given email.
- Tax rules for the Canadian provinces/territories (skips existing ones).
- Optionally the DUE_SOON threshold in system_config.

Run inside the API container to use 'postgres' host and project PYTHONPATH:
    docker compose exec api python scripts/seed_data.py \
        --email admin@invoicing.local \
        --full-name "Admin" \
        --due-soon-days 7

Prints a bearer token for the admin so the API can be used right away.
Note: This is intended for development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse

from app.database.database import SessionLocal, sync_engine, Base
from app.modules.auth.models import User, UserRole
from app.modules.auth.utils import create_access_token
from app.modules.invoices.status_service import build_status_service
from app.modules.taxes.service import create_default_tax_rules
import app.modules.clients.models
import app.modules.invoices.models


def create_admin_user(db, email: str, full_name: str):
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        return existing
    user = User(email=email, full_name=full_name, role=UserRole.ADMIN, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def main():
    parser = argparse.ArgumentParser(description="Seed admin user and default tax rules")
    parser.add_argument("--email", default="admin@invoicing.local")
    parser.add_argument("--full-name", default="Admin")
    parser.add_argument("--due-soon-days", type=int, default=None,
                        help="Store a DUE_SOON threshold (days) in system_config")
    parser.add_argument("--create-tables", action="store_true",
                        help="Run Base.metadata.create_all before seeding")
    args = parser.parse_args()

    if args.due_soon_days is not None and args.due_soon_days < 1:
        parser.error("--due-soon-days must be a positive integer")

    if args.create_tables:
        Base.metadata.create_all(bind=sync_engine)

    db = SessionLocal()
    try:
        user = create_admin_user(db, args.email, args.full_name)
        print(f"Admin user: {user.email} ({user.id})")

        created = create_default_tax_rules(db)
        print(f"Tax rules created: {len(created)}")

        if args.due_soon_days is not None:
            status_service = build_status_service(db)
            status_service.set_due_soon_threshold(args.due_soon_days, user.id)
            print(f"Due soon threshold: {args.due_soon_days} days")

        token = create_access_token({"sub": str(user.id)})
        print("\nSeed completed.")
        print("Header for API requests:")
        print(f"  Authorization: Bearer {token}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
