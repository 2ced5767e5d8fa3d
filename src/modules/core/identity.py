"""Owner identity helpers.

Builds are owned by an external subject id.  Clerk users expose ``sub``;
local Django users (SimpleJWT, admin, tests) fall back to their primary key.
"""

from __future__ import annotations

from typing import Any


def owner_id_for(user: Any) -> str:
    sub = getattr(user, "sub", None)
    if sub:
        return str(sub)
    return str(user.pk)


def is_admin(user: Any) -> bool:
    return bool(getattr(user, "is_staff", False))
