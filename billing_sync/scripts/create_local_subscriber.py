"""
Script to create a free-tier subscriber row for local webhook testing.

The printed id is the value to put in the Stripe customer or subscription
metadata (``supabase_user_id``) so test events correlate to this row.
"""

import argparse
import asyncio
import uuid
from typing import Optional

from sqlmodel import select

from billing_sync.core.config import get_settings
from billing_sync.core.database import Database
from billing_sync.models.user import User


async def create_subscriber(email: str, user_id: Optional[uuid.UUID] = None) -> uuid.UUID:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        await database.init_models()
        async with database.session() as session:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user:
                print(f"Subscriber {email} already exists.")
                return user.id

            user = User(id=user_id or uuid.uuid4(), email=email)
            session.add(user)
            print(f"Created subscriber: {email}")
            return user.id
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a local subscriber.")
    parser.add_argument("--email", required=True, help="Subscriber email")
    parser.add_argument("--id", type=uuid.UUID, default=None, help="Fixed subscriber id")
    args = parser.parse_args()

    subscriber_id = asyncio.run(create_subscriber(args.email, args.id))
    print(f"Subscriber id: {subscriber_id}")


if __name__ == "__main__":
    main()
