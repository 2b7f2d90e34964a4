"""CLI script to create (or promote) the admin account.

Usage: python scripts/seed_admin.py [--email EMAIL] [--name NAME]

The password is read from `ADMIN_PASSWORD`; the email defaults to
`ADMIN_EMAIL` or admin@pulihhati.com.
"""
import argparse
import os
import pathlib
import sys

# Ensure `backend/` is on sys.path so `pulihhati` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from pulihhati import models, repositories
from pulihhati.database import create_db_and_tables, engine, transaction
from pulihhati.services import PWD_CTX, ROLE_ADMIN


def main(email: str, name: str, password: str) -> int:
    """Create the admin user, or give an existing user the admin role."""
    create_db_and_tables()
    with Session(engine) as session:
        repo = repositories.UserRepository(session)
        with transaction(session):
            user = repo.get_by_email(email)
            if user:
                user.role = ROLE_ADMIN
                repo.add(user)
                print(f'User {email} promoted to admin (id {user.id})')
            else:
                user = repo.add(models.User(
                    name=name, email=email.strip().lower(),
                    password_hash=PWD_CTX.hash(password), role=ROLE_ADMIN,
                ))
                print(f'Admin {email} created (id {user.id})')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--email', default=os.getenv('ADMIN_EMAIL', 'admin@pulihhati.com'))
    parser.add_argument('--name', default='Admin')
    args = parser.parse_args()
    password = os.getenv('ADMIN_PASSWORD', '')
    if len(password) < 6:
        print('ADMIN_PASSWORD must be set (at least 6 characters)')
        sys.exit(1)
    sys.exit(main(args.email, args.name, password))
