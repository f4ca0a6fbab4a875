"""
Admin impersonation: mint a magic sign-in link for another user.
"""

from __future__ import annotations

import logging
from typing import Optional

from fanmeet.auth import AuthClient
from fanmeet.db import DbClient
from fanmeet.errors import (
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def impersonate_user(
    auth: AuthClient,
    db: DbClient,
    access_token: Optional[str],
    target_user_id: Optional[str],
) -> str:
    caller = auth.get_user(access_token) if access_token else None
    if not caller:
        raise NotAuthenticatedError("Not authenticated")

    profile = db.get_profile(caller.id)
    if not profile or profile.role != ADMIN_ROLE:
        raise PermissionDeniedError("Unauthorized: Only admins can perform this action")

    if not target_user_id:
        raise ValidationError("targetUserId is required")

    target = auth.get_user_by_id(target_user_id)
    if not target:
        raise NotFoundError("Target user not found")
    if not target.email:
        raise ValidationError("Target user has no email")

    action_link = auth.generate_magic_link(target.email)
    logger.info("Admin %s generated impersonation link for %s", caller.id, target.id)
    return action_link
