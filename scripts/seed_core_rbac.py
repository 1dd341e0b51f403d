"""Provision the baseline permissions, core roles and an optional bootstrap admin.

Run:
  PYTHONPATH=backend python scripts/seed_core_rbac.py

Set BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD to also create an
administrator holding the Admin role. Safe to run repeatedly.
"""

from __future__ import annotations

import logging

from app.core.config import get_settings
from app.db.bootstrap import ensure_runtime_schema_compatibility, provision_core_rbac
from app.db.session import SessionLocal


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    ensure_runtime_schema_compatibility()
    session = SessionLocal()
    try:
        counts = provision_core_rbac(session, settings)
    finally:
        session.close()

    print("\nCore RBAC ready:")
    print(f"  - new permissions: {counts['permissions']}")
    print(f"  - new roles: {counts['roles']}")
    print(f"  - core roles: {', '.join(settings.core_role_names)}")
    if settings.bootstrap_admin_email:
        print(f"  - bootstrap admin: {settings.bootstrap_admin_email}")


if __name__ == "__main__":
    main()
