"""Who is calling and from where, resolved once per request."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    id: str
    role: str  # user | admin | super
    username: Optional[str] = None


@dataclass(frozen=True)
class OriginInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[str] = None


UNKNOWN_ORIGIN = OriginInfo()
