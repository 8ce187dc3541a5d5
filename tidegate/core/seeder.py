"""Seed the permission catalog and system roles on startup.

Idempotent: existing permission rows are left alone, missing ones are
inserted, and each system role is created with its catalog permission set
only if a role of that name does not exist yet. Edits an operator made to a
system role's permissions therefore survive restarts.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import catalog
from .config import settings

logger = logging.getLogger(__name__)


def seed_permission_catalog(db: Session) -> int:
    """Insert catalog permissions that are not in the table yet.

    Returns:
        Number of permission rows inserted.
    """
    from ..models import Permission

    existing = {row[0] for row in db.query(Permission.id).all()}
    inserted = 0
    for definition in catalog.all_permissions():
        if definition.id in existing:
            continue
        db.add(Permission(
            id=definition.id,
            name=definition.name,
            display_name=definition.display_name,
            description=definition.description or None,
            resource_type=definition.resource_type,
            action=definition.action,
            scope=definition.scope.value,
        ))
        inserted += 1
    db.commit()
    if inserted:
        logger.info("Seeded %d catalog permissions", inserted)
    return inserted


def seed_system_roles(db: Session) -> int:
    """Create any missing system role with its catalog permission set.

    Returns:
        Number of roles created.
    """
    from ..models import Role, RolePermission

    created = 0
    for definition in catalog.SYSTEM_ROLES:
        if db.query(Role.id).filter(Role.name == definition.name).first() is not None:
            continue
        role = Role(
            name=definition.name,
            display_name=definition.display_name,
            description=definition.description,
            type="system",
            is_default=definition.is_default,
        )
        db.add(role)
        db.flush()
        for name in definition.permissions:
            db.add(RolePermission(role_id=role.id, permission_id=catalog.get_by_name(name).id))
        created += 1
    db.commit()
    if created:
        logger.info("Seeded %d system roles", created)
    return created


def seed_initial_admin(
    db: Session,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> bool:
    """Bootstrap an admin account holding super_admin at global scope.

    Skipped when no username/password is configured or the user already
    exists. Returns True if the account was created.
    """
    from ..models import Role
    from ..repositories import GrantRepository, UserRepository
    from ..schemas.session import RegisterRequest
    from ..services.auth_service import AuthService
    from .clock import utcnow
    from .scope import Scope

    username = username if username is not None else settings.admin_initial_username
    password = password if password is not None else settings.admin_initial_password
    if not username or not password:
        return False
    if UserRepository(db).get_by_login(username) is not None:
        logger.debug("Initial admin %s already exists, skipping", username)
        return False

    email = username if "@" in username else f"{username}@localhost"
    user = AuthService(db).register_user(
        RegisterRequest(username=username, email=email, password=password, display_name="Administrator")
    )
    super_admin = db.query(Role).filter(Role.name == "super_admin").one()
    GrantRepository(db).upsert(
        user_id=user.id,
        role_id=super_admin.id,
        scope=Scope.global_(),
        granted_at=utcnow(),
        granted_by=None,
        expires_at=None,
    )
    logger.info("Initial admin user created: %s", username)
    return True


def seed_all(db: Session) -> None:
    seed_permission_catalog(db)
    seed_system_roles(db)
    seed_initial_admin(db)
