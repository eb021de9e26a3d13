"""CLI script to create the schema and load the demo seed data.
Usage: python scripts/seed_db.py [--reset] [--file PATH]
"""
import sys
import argparse
import pathlib
from typing import Optional
# Ensure `backend/` is on sys.path so `datingapp` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import SQLModel, Session
from datingapp.database import engine, create_db_and_tables
from datingapp import seed


def main(reset: bool = False, seed_file: Optional[pathlib.Path] = None):
    """Create tables and seed roles plus demo users.

    With `reset` every table is dropped first. Seeding is skipped when
    the database already holds users. Results are printed to stdout.
    """
    if reset:
        print('Dropping all tables')
        SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    with Session(engine) as session:
        seed.seed_roles(session)
        created = seed.seed_users(session, path=seed_file or seed.SEED_FILE)
    if created:
        print(f'Seeded {created} users')
    else:
        print('Database already has users; nothing seeded')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--reset', action='store_true', help='Drop all tables before seeding')
    parser.add_argument('--file', type=pathlib.Path, help='Seed users from this JSON file')
    args = parser.parse_args()
    main(reset=args.reset, seed_file=args.file)
