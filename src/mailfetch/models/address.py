from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True, eq=False)
class MessageAddress:
    email: str
    name: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>" if self.name else self.email

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"email": self.email, "name": self.name}
