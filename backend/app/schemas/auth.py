from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict)
