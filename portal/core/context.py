"""
Request authentication contexts produced by the authorization dependencies.
"""

from dataclasses import dataclass
from typing import Optional, Union

from portal.models.schemas import Principal


@dataclass(frozen=True)
class AuthenticatedContext:
    """A request whose bearer token resolved to a live principal."""
    principal: Principal
    token: str

    is_authenticated = True

    @property
    def principal_id(self) -> str:
        return self.principal.id


@dataclass(frozen=True)
class AnonymousContext:
    """A request that carried no usable token."""
    reason: Optional[str] = None

    is_authenticated = False
    principal = None


RequestContext = Union[AuthenticatedContext, AnonymousContext]
