"""
Create a user (e.g. the first admin). Run from project root:
  python -m app.scripts.create_user NAME EMAIL PASSWORD [role]
Example:
  python -m app.scripts.create_user "Site Admin" admin@example.com your-secure-password admin
"""
import argparse
import sys

from app.core.database import SessionLocal, engine
from app.models import Base
from app.schemas.auth import SignUpRequest
from app.schemas.validation import validate_input
from app.services.auth import register_user
from app.services.users import EmailExistsError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create an account from the command line.")
    parser.add_argument("name", help="Display name (1-255 chars)")
    parser.add_argument("email", help="Email address (stored lowercased)")
    parser.add_argument("password", help="Password (6-128 chars)")
    parser.add_argument("role", nargs="?", default="user", choices=["user", "admin"])
    args = parser.parse_args(argv)

    result = validate_input(
        SignUpRequest,
        {"name": args.name, "email": args.email, "password": args.password, "role": args.role},
    )
    if not result.ok:
        for message in result.errors:
            print(message, file=sys.stderr)
        return 1
    data = result.value

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = register_user(
            db,
            name=data.name,
            email=data.email,
            password=data.password,
            role=data.role,
        )
    except EmailExistsError:
        print(f"User '{data.email}' already exists.", file=sys.stderr)
        return 1
    finally:
        db.close()
    print(f"Created user '{user.email}' (id {user.id}) with role '{user.role}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
