from __future__ import annotations

import logging
import os

from sqlalchemy.orm import Session

from . import models
from .db import SessionLocal
from .enums import RoleName
from .permissions import ALL_PERMISSIONS, ROLE_PERMISSIONS, bump_cache_version, permission_slug

logger = logging.getLogger(__name__)


def _ensure_permissions(db: Session) -> dict[str, models.Permission]:
    existing = {permission.name: permission for permission in db.query(models.Permission).all()}
    for name in ALL_PERMISSIONS:
        if name not in existing:
            permission = models.Permission(name=name, slug=permission_slug(name))
            db.add(permission)
            existing[name] = permission
            logger.info(f"Seeded permission {name}")
    db.flush()
    return existing


def _ensure_roles(db: Session, permissions: dict[str, models.Permission]) -> bool:
    """
    Create missing roles with their default grants.

    Existing roles keep whatever an administrator configured, except that the
    Administrator role always holds every permission.
    """
    changed = False
    for role_name, granted in ROLE_PERMISSIONS.items():
        role = db.query(models.Role).filter(models.Role.name == role_name.value).first()
        if role is None:
            role = models.Role(name=role_name.value, slug=role_name.value.replace("_", "-"))
            role.permissions = [permissions[name] for name in ALL_PERMISSIONS if name in granted]
            db.add(role)
            changed = True
            logger.info(f"Seeded role {role_name.value} with {len(role.permissions)} permissions")
            continue

        if role_name is RoleName.ADMINISTRATOR:
            held = {permission.name for permission in role.permissions}
            missing = [permissions[name] for name in ALL_PERMISSIONS if name not in held]
            if missing:
                role.permissions.extend(missing)
                changed = True
                logger.info(f"Granted {len(missing)} new permissions to {role_name.value}")
    db.flush()
    return changed


def _ensure_admin_account(db: Session) -> None:
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        return

    from .services.accounts import find_user_by_email, hash_password, normalize_email

    if find_user_by_email(db, email) is not None:
        return

    admin_role = db.query(models.Role).filter(models.Role.name == RoleName.ADMINISTRATOR.value).one()
    user = models.User(
        name=os.getenv("ADMIN_NAME", "Administrator"),
        email=normalize_email(email),
        password_hash=hash_password(password),
    )
    user.roles = [admin_role]
    db.add(user)
    logger.info(f"Seeded administrator account {user.email}")


def ensure_seed_data() -> None:
    """
    Idempotently seed permissions, roles, their default grants and the
    optional administrator account (ADMIN_EMAIL / ADMIN_PASSWORD).
    """
    db = SessionLocal()
    try:
        permissions = _ensure_permissions(db)
        changed = _ensure_roles(db, permissions)
        _ensure_admin_account(db)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    if changed:
        bump_cache_version()
    logger.info("ensure_seed_data: Seed data is up to date.")


if __name__ == "__main__":
    logging.basicConfig(level="INFO")
    ensure_seed_data()
