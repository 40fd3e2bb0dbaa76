"""Reset a user's password and revoke their session.

Usage:
    python scripts/reset_pw.py <username-or-email> <new-password>
"""
import argparse
import asyncio
import sys

sys.path.insert(0, ".")

from src.config import get_settings
from src.database import Database
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.jwt import JWTManager
from src.kernel.identity.password import PasswordHasher


async def reset_password(identifier: str, new_password: str) -> int:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        async with database.session() as session:
            service = IdentityService(
                session,
                jwt_manager=JWTManager.from_settings(settings),
                password_hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            )
            user = await service.get_user_by_login(username=identifier, email=identifier)
            if user is None:
                print(f"No user matches {identifier!r}")
                return 1
            user.password_hash = service.password_hasher.hash(new_password)
            await service.revoke_session(user.id)
            print(f"Password reset for {user.username}; session revoked")
            return 0
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("identifier", help="username or email")
    parser.add_argument("password", help="new password")
    args = parser.parse_args()
    sys.exit(asyncio.run(reset_password(args.identifier, args.password)))


if __name__ == "__main__":
    main()
