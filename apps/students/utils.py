"""
Account helpers for parents and students
"""
import logging
import re
import uuid

from django.contrib.auth import get_user_model
from django.db import transaction

from apps.corecode.utils import ROLE_PARENT, assign_role
from .models import ParentProfile

logger = logging.getLogger(__name__)


def generate_username(email: str) -> str:
    """
    Generate a unique username from an email address.
    """
    User = get_user_model()

    local_part = email.split("@")[0]
    safe = re.sub(r"[^a-zA-Z0-9._-]", "", local_part) or "parent"
    username = safe[:150]

    if not User.objects.filter(username=username).exists():
        return username

    for _ in range(10):
        suffix = uuid.uuid4().hex[:8]
        username = f"{safe}_{suffix}"[:150]
        if not User.objects.filter(username=username).exists():
            return username

    raise RuntimeError("Username generation failed after multiple attempts")


def create_parent_account(first_name, last_name, email, **profile_fields):
    """
    Create a login user in the Parents group together with its ParentProfile.

    The user gets an unusable password; parents set one through password reset.
    """
    User = get_user_model()

    with transaction.atomic():
        user = User.objects.create_user(
            username=generate_username(email),
            email=email,
            first_name=first_name,
            last_name=last_name,
        )
        user.set_unusable_password()
        user.save(update_fields=['password'])
        assign_role(user, ROLE_PARENT)

        profile = ParentProfile.objects.create(user=user, **profile_fields)

    logger.info("Parent account created: %s (user %s)", profile.full_name, user.pk)
    return profile
