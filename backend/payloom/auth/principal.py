"""
Authenticated principal
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Principal:
    """Authenticated user principal (decoded bearer token)"""
    subject: str  # JWT 'sub' claim, the opaque user id
    email: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    raw_claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.subject

    @property
    def is_admin(self) -> bool:
        return "ADMIN" in {role.upper() for role in self.roles}
