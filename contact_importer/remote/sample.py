"""Writer implementations that never leave the process."""
from __future__ import annotations

from typing import List, Sequence, Tuple

from .base import Contact


class DryRunWriter:
    """Accepts every contact and remembers what would have been sent."""

    name = "dry-run"

    def __init__(self) -> None:
        self.upserts: List[Tuple[str, Contact]] = []
        self.subscriptions: List[Tuple[str, Contact, Tuple[str, ...]]] = []

    async def upsert(self, workspace_id: str, contact: Contact) -> None:
        self.upserts.append((workspace_id, dict(contact)))

    async def subscribe(self, workspace_id: str, contact: Contact, list_ids: Sequence[str]) -> None:
        self.subscriptions.append((workspace_id, dict(contact), tuple(list_ids)))

    @property
    def emails(self) -> List[str]:
        sent = [contact for _, contact in self.upserts] + [contact for _, contact, _ in self.subscriptions]
        return [str(contact.get("email")) for contact in sent]
