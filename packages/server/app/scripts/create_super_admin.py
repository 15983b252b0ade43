"""
Create the platform super admin and seed the default catalog
(external projects and a monthly plan) for a fresh database.

    python -m app.scripts.create_super_admin --email ops@example.com --password ...
"""

import argparse
import asyncio

from sqlmodel import select

from app.core.auth import set_user_password
from app.core.database import get_session_context, init_db
from app.models.project import Project
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User

DEFAULT_PROJECTS = [
    {
        "name": "MyDoctor",
        "slug": "mydoctor",
        "description": "Doctor management platform",
        "integration_type": "api",
        "api_base_url": "https://mydoctoradmin.mydoctorplus.it/api",
        "api_auth_type": "bearer",
    },
    {
        "name": "TG Calabria",
        "slug": "tg-calabria",
        "description": "Regional newsroom",
        "integration_type": "api",
        "api_base_url": "https://api.tgcalabriareport.com/api/v1",
        "api_auth_type": "bearer",
    },
]

DEFAULT_PLAN = {
    "name": "Standard",
    "description": "Monthly access to the CRM and granted projects",
    "amount": 4900,
    "currency": "EUR",
    "interval": "month",
    "features": ["CRM", "External projects"],
}


async def seed(email: str, password: str, name: str) -> None:
    await init_db()

    async with get_session_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user:
            print(f"User {email} already exists.")
        else:
            user = User(name=name, email=email, password_hash="", role="super_admin", status="active")
            set_user_password(user, password)
            session.add(user)
            print(f"Created super admin: {email}")

        for entry in DEFAULT_PROJECTS:
            result = await session.execute(select(Project).where(Project.slug == entry["slug"]))
            if result.scalar_one_or_none() is None:
                session.add(Project(**entry))
                print(f"Created project: {entry['slug']}")

        result = await session.execute(select(SubscriptionPlan).limit(1))
        if result.scalar_one_or_none() is None:
            session.add(SubscriptionPlan(**DEFAULT_PLAN))
            print(f"Created plan: {DEFAULT_PLAN['name']}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a super admin and seed defaults")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Platform Admin")
    args = parser.parse_args()
    asyncio.run(seed(args.email, args.password, args.name))


if __name__ == "__main__":
    main()
