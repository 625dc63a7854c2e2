"""Caller identity supplied by the upstream identity provider.

Credentials are verified before requests reach this service; the gateway
forwards the resulting profile in ``X-User-*`` headers. We only read those
headers and authorize by identity equality further down.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status


@dataclass(slots=True, frozen=True)
class Identity:
	id: str
	email: str = ""
	display_name: str = ""
	avatar_url: str = ""

	def is_complete(self) -> bool:
		return bool(self.id and self.email and self.display_name)


async def get_identity(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
	x_user_photo: Optional[str] = Header(default=None, alias="X-User-Photo"),
) -> Identity:
	"""Resolve the trusted caller identity or reject the request."""
	user_id = (x_user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="identity_required")
	return Identity(
		id=user_id,
		email=(x_user_email or "").strip(),
		display_name=(x_user_name or "").strip(),
		avatar_url=(x_user_photo or "").strip(),
	)


def require_same_user(identity: Identity, user_id: str) -> None:
	if identity.id != user_id:
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="identity_mismatch")


__all__ = ["Identity", "get_identity", "require_same_user"]
