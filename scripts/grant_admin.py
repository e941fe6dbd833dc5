"""
Grant or revoke the admin flag for a user by username.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from challenge_backend.dependencies import get_db_client

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Toggle a user's admin flag")
    parser.add_argument("username")
    parser.add_argument(
        "--revoke",
        action="store_true",
        help="Remove admin rights instead of granting them",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    db = get_db_client()

    user = db.find_user_by_username(args.username)
    if not user:
        logger.error("No user named %s", args.username)
        return 1

    db.set_admin(user.id, not args.revoke)
    logger.info(
        "%s is %s an admin", user.username, "no longer" if args.revoke else "now"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
