from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from contact_importer.checkpoints import CheckpointStore, MemoryStorage
from contact_importer.errors import RowSubmissionError
from contact_importer.models import ParsedFile

HEADERS = ("Email", "First Name", "custom_json_1", "Lifetime Value")


class StubWriter:
    """Records every contact and rejects the emails listed in ``fail_emails``."""

    name = "stub"

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, object], Tuple[str, ...]]] = []
        self.fail_emails: set[str] = set()
        self.on_call: Optional[Callable[[int, Dict[str, object]], None]] = None

    async def upsert(self, workspace_id: str, contact: Dict[str, object]) -> None:
        await self._record(workspace_id, contact, ())

    async def subscribe(self, workspace_id: str, contact: Dict[str, object], list_ids: Sequence[str]) -> None:
        await self._record(workspace_id, contact, tuple(list_ids))

    async def _record(self, workspace_id: str, contact: Dict[str, object], list_ids: Tuple[str, ...]) -> None:
        self.calls.append((workspace_id, dict(contact), list_ids))
        if self.on_call:
            self.on_call(len(self.calls), contact)
        if contact.get("email") in self.fail_emails:
            raise RowSubmissionError(f"rejected {contact['email']}")

    @property
    def emails(self) -> List[str]:
        return [str(contact["email"]) for _, contact, _ in self.calls]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def email_for(index: int) -> str:
    return f"user{index}@example.com"


def build_file(
    total: int,
    *,
    file_name: str = "contacts.csv",
    blank_emails: Sequence[int] = (),
    overrides: Optional[Dict[int, Dict[int, str]]] = None,
) -> ParsedFile:
    overrides = overrides or {}
    rows = []
    for index in range(total):
        row = ["" if index in blank_emails else email_for(index), f"User {index}", "", ""]
        for column, value in overrides.get(index, {}).items():
            row[column] = value
        rows.append(tuple(row))
    return ParsedFile(file_name=file_name, headers=HEADERS, rows=tuple(rows))


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def store(storage: MemoryStorage, clock: FakeClock) -> CheckpointStore:
    return CheckpointStore(storage, clock=clock)


@pytest.fixture()
def writer() -> StubWriter:
    return StubWriter()


@pytest.fixture()
def make_file() -> Callable[..., ParsedFile]:
    return build_file


@pytest.fixture()
def writer_factory() -> Callable[[], StubWriter]:
    return StubWriter
