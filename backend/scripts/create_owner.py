"""
Promote a user to the owner role.

The user must have signed in at least once so their profile exists.
The change is written to the role audit trail.

Usage:
    python -m scripts.create_owner user@example.com
    OWNER_EMAIL=user@example.com python -m scripts.create_owner

Environment variables:
    DATABASE_URL: PostgreSQL connection string (required)
"""

import os
import sys
import logging
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from fxacademy.database.session import session_scope
from fxacademy.services.role_service import RoleService, RoleTargetNotFoundError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_owner(email: str) -> None:
    with session_scope() as session:
        profile = RoleService(session).promote_owner(email)
        logger.info(f"Owner ready: {profile.email} (user id {profile.id})")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Promote a user to owner")
    parser.add_argument("email", nargs="?", help="User email (defaults to OWNER_EMAIL)")
    args = parser.parse_args()

    email = args.email or os.getenv("OWNER_EMAIL")
    if not email:
        parser.error("Provide an email or set OWNER_EMAIL")

    try:
        create_owner(email)
    except RoleTargetNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
