# scripts/init_db.py
import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import asyncio
import os
import uuid
from datetime import datetime, timezone

from change_control.config.settings import get_settings
from change_control.domain.models.identity import Identity, Role, format_employee_id
from change_control.infrastructure.database.identity_repository_db import DbIdentityRepository
from change_control.infrastructure.database.session import (
    dispose_engine,
    get_engine,
    get_session_factory,
    init_models,
)
from change_control.security.credentials import Pbkdf2CredentialHasher

ADMIN_EMAIL = os.environ.get("BOOTSTRAP_ADMIN_EMAIL", "admin@changeflow.com")
ADMIN_PASSWORD = os.environ.get("BOOTSTRAP_ADMIN_PASSWORD", "admin123")


async def init_db():
    """Create tables and the first Admin. Identity provisioning itself requires an Admin actor."""
    settings = get_settings()
    await init_models(get_engine())
    print("Tables created:", settings.database_url.split("@")[-1])

    repository = DbIdentityRepository(get_session_factory())
    existing = await repository.find_by_email(ADMIN_EMAIL)
    if existing is not None:
        print("Admin already exists:", existing.employee_id)
    else:
        hasher = Pbkdf2CredentialHasher(iterations=settings.credential_hash_iterations)
        now = datetime.now(timezone.utc)
        admin = Identity(
            identity_id=str(uuid.uuid4()),
            role=Role.ADMIN,
            name="System Administrator",
            email=ADMIN_EMAIL,
            employee_id=format_employee_id(await repository.max_employee_number() + 1),
            created_at=now,
            updated_at=now,
        )
        await repository.insert(admin, hasher.hash(ADMIN_PASSWORD))
        print("Admin created:", admin.identity_id, admin.employee_id)

    await dispose_engine()

asyncio.run(init_db())
