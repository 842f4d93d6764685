#!/usr/bin/env python3
"""
Super Admin Bootstrap Script

Creates a super admin account, or promotes an existing account by email.
Super admins can only be created here; the admin API never grants the role.

Usage:
    python -m scripts.create_admin --email admin@example.com
    python -m scripts.create_admin --email admin@example.com --user-id <uuid>
"""

import asyncio
import argparse
import logging
from typing import Optional
from uuid import UUID, uuid4

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.domain.subscription import User, UserRole
from app.infrastructure.db.database import close_db, get_session_context
from app.infrastructure.db.repositories.activity_log_repository import ActivityLogRepository
from app.infrastructure.db.repositories.user_repository import UserRepository

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def create_super_admin(email: str, user_id: Optional[UUID] = None) -> User:
    """
    Create or promote a super admin.

    Args:
        email: Account email
        user_id: Identity to use for a new account (the `sub` of its tokens);
            random when omitted

    Returns:
        The super admin user
    """
    async with get_session_context() as session:
        users = UserRepository(session)
        activity = ActivityLogRepository(session)

        existing = await users.get_by_email(email)
        if existing:
            if existing.role == UserRole.SUPER_ADMIN:
                logger.info(f"{email} is already a super admin")
                return existing
            user = await users.update_role(existing.id, UserRole.SUPER_ADMIN)
            await activity.record(
                user.id,
                "role_changed",
                {"from": existing.role.value, "to": user.role.value, "by": "create_admin"},
            )
            logger.info(f"Promoted {email} to super admin")
            return user

        user = await users.get_or_create(
            user_id or uuid4(),
            email,
            role=UserRole.SUPER_ADMIN,
        )
        logger.info(f"Created super admin {email} ({user.id})")
        return user


async def main():
    parser = argparse.ArgumentParser(description="Create or promote a super admin")
    parser.add_argument("--email", required=True, help="Admin account email")
    parser.add_argument(
        "--user-id",
        type=UUID,
        default=None,
        help="User ID for a new account (defaults to a random UUID)"
    )
    args = parser.parse_args()

    try:
        user = await create_super_admin(args.email, args.user_id)
    finally:
        await close_db()

    print("\n=== Super Admin Ready ===")
    print(f"ID: {user.id}")
    print(f"Email: {user.email}")
    print(f"Role: {user.role.value}")


if __name__ == "__main__":
    asyncio.run(main())
