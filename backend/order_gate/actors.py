from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """Who performed an action; copied onto order logs and stock movements."""
    id: str
    name: str


SYSTEM_ACTOR = Actor(id="system", name="System")
SYSTEM_ORDER_ACTOR = Actor(id="system", name="System (Order)")
