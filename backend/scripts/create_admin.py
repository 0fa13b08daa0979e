"""Create an admin account, or promote an existing user to admin.

Run inside Docker:
    docker compose exec backend python -m scripts.create_admin <username> <email> [password]

When the username or email already exists the account is promoted (and
re-activated); the password is only used for new accounts.
"""

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import or_, select

from milkdrop.auth.passwords import hash_password
from milkdrop.database import async_session_factory, engine
from milkdrop.models.user import User

MIN_PASSWORD_LENGTH = 6


async def create_admin(username: str, email: str, password: str | None) -> User:
    email = email.lower()
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(or_(User.username == username, User.email == email))
        )
        user = result.scalars().first()

        if user is not None:
            user.role = "admin"
            user.is_active = True
            await session.commit()
            print(f"✅ Promoted {user.username} ({user.email}) to admin")
            return user

        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise SystemExit(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        user = User(
            username=username,
            email=email,
            hashed_password=hash_password(password),
            role="admin",
            is_active=True,
        )
        session.add(user)
        await session.commit()
        print(f"✅ Created admin {user.username} ({user.email}, id={user.id})")

    await engine.dispose()
    return user


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("password", nargs="?", help="prompted for when omitted")
    args = parser.parse_args()

    password = args.password
    if password is None:
        password = getpass.getpass("Password for new admin (ignored when promoting): ")

    asyncio.run(create_admin(args.username, args.email, password))


if __name__ == "__main__":
    main()
