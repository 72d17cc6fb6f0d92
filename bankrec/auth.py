"""Request-scoped actor resolution."""

from fastapi import Header

from bankrec.utils.exceptions import raise_unauthorized


async def get_actor_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """Resolve the acting user from the X-User-Id header."""
    actor_id = (x_user_id or "").strip()
    if not actor_id:
        raise_unauthorized("Missing X-User-Id header")
    return actor_id
