"""Interface between the import engine and the remote contact API."""
from __future__ import annotations

from typing import Any, Dict, Protocol, Sequence

Contact = Dict[str, Any]


class ContactWriter(Protocol):
    """Writes contacts to a workspace.

    Both calls must be idempotent by email: a resumed import may send the
    same contact again. Rejections are raised as
    :class:`~contact_importer.errors.RowSubmissionError`.
    """

    name: str

    async def upsert(self, workspace_id: str, contact: Contact) -> None:  # pragma: no cover - runtime protocol
        """Create or update a contact keyed by its email."""

    async def subscribe(
        self, workspace_id: str, contact: Contact, list_ids: Sequence[str]
    ) -> None:  # pragma: no cover - runtime protocol
        """Upsert a contact and subscribe it to ``list_ids``."""
