"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work.

The password hash is deliberately absent from User. It lives only in the users
table and inside auth/store.py, so nothing that receives a User can leak it.

Layer rule: no imports from api/, users/, or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class UserRole(str, Enum):
    client = "Client"
    owner = "Owner"
    delivery = "Delivery"


@dataclass
class User:
    """An account as seen by everything outside the credential store."""

    email: str
    role: UserRole
    id: int | None = None
    verified: bool = False
    created_at: str | None = None
    updated_at: str | None = None

