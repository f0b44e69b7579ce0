"""Small maintenance utilities: ``python -m digilib.cli --initdb --seed``."""

import argparse
import logging

from digilib.core.config import settings
from digilib.core.database import SessionLocal, init_db
from digilib.core.security import hash_password
from digilib.models.models import Book, Role, User
from digilib.services.members import generate_member_id, migrate_member_ids

logger = logging.getLogger("digilib")

SAMPLE_BOOKS = [
    dict(title="Laskar Pelangi", author="Andrea Hirata", publisher="Bentang Pustaka", year=2005,
         isbn="978-979-3062-79-2", category="Novel", copies_total=3),
    dict(title="Bumi Manusia", author="Pramoedya Ananta Toer", publisher="Hasta Mitra", year=1980,
         isbn="978-979-97312-3-4", category="Novel", copies_total=2),
    dict(title="Designing Data-Intensive Applications", author="Martin Kleppmann", publisher="O'Reilly",
         year=2017, isbn="978-1-4493-7332-0", category="Technology", copies_total=1),
]


def seed(db) -> None:
    # idempotent
    if db.query(User).count() == 0:
        for name, email, role in [("Admin", "admin@example.com", Role.ADMIN),
                                  ("Member", "member@example.com", Role.USER)]:
            db.add(User(member_id=generate_member_id(db), name=name, email=email,
                        password_hash=hash_password("password123"), role=role))
            db.flush()
    if db.query(Book).count() == 0:
        db.add_all([Book(stock=b["copies_total"], **b) for b in SAMPLE_BOOKS])
    db.commit()
    logger.info("Seeded sample data")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Digital library utilities")
    parser.add_argument("--initdb", action="store_true", help="Create tables")
    parser.add_argument("--seed", action="store_true", help="Seed sample data")
    parser.add_argument("--migrate-member-ids", action="store_true",
                        help="Rename legacy M-prefixed member ids to the A prefix")
    args = parser.parse_args(argv)
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    init_db()
    db = SessionLocal()
    try:
        if args.seed:
            seed(db)
        if args.migrate_member_ids:
            migrate_member_ids(db)
    finally:
        db.close()
    print("Done")


if __name__ == "__main__":
    main()
