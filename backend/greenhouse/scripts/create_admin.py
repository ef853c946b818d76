"""Create an administrator account.

Usage: python -m greenhouse.scripts.create_admin --email admin@example.com --password secret
"""
import argparse
import sys
from typing import List, Optional

from greenhouse.config import get_settings
from greenhouse.database import Database
from greenhouse.errors import AlreadyExists
from greenhouse.models import UserType
from greenhouse.modules.user import create_user


def main(argv: Optional[List[str]] = None, database: Optional[Database] = None) -> int:
    parser = argparse.ArgumentParser(description="Create an administrator of the greenhouse API")
    parser.add_argument("--email", required=True, help="Administrator email")
    parser.add_argument("--password", required=True, help="Administrator password")
    parser.add_argument("--type", default=UserType.ADMIN.value, choices=[t.value for t in UserType], help="Account type")

    args = parser.parse_args(argv)

    settings = get_settings()
    database = database or Database(settings.sqlalchemy_url)
    database.create_all()

    with database.session() as session:
        try:
            user = create_user(session, args.email, args.password, UserType(args.type), settings.salt_rounds)
        except AlreadyExists as exc:
            print(f"Error: {exc.message}")
            return 1

        print(f"User '{user.email}' created with type {user.type.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
