from __future__ import annotations

import asyncio

import pytest

from contact_importer.checkpoints import CheckpointStore
from contact_importer.errors import PersistenceError, ValidationError
from contact_importer.models import ImportRunState, RunStatus
from contact_importer.processor import BatchProcessor, build_contact

MAPPING = {"email": "Email", "first_name": "First Name", "custom_json_1": "custom_json_1", "lifetime_value": "Lifetime Value"}


def _processor(writer, store, **kwargs) -> BatchProcessor:
    return BatchProcessor(writer, store, workspace_id="ws_1", **kwargs)


def test_scenario_57_rows_checkpoints_after_first_batch(writer, store, make_file) -> None:
    parsed = make_file(57)
    processor = _processor(writer, store)
    seen = {}

    def on_call(count, _contact):
        if count == 26:
            seen["checkpoint"] = store.load("ws_1", "contacts.csv")
            seen["batches"] = processor.state.total_batches

    writer.on_call = on_call
    state = asyncio.run(processor.start(parsed, MAPPING))

    assert seen["batches"] == 3
    checkpoint = seen["checkpoint"]
    assert checkpoint.current_row_index == 25
    assert checkpoint.current_batch_number == 1
    assert checkpoint.total_batches == 3
    assert checkpoint.mapping == MAPPING
    assert state.status is RunStatus.COMPLETED
    assert state.success_count == 57
    assert state.row_index == 57
    assert state.batch_number == 3


def test_start_without_email_mapping_stays_idle(writer, store, make_file) -> None:
    processor = _processor(writer, store)
    mapping = {"first_name": "First Name"}

    with pytest.raises(ValidationError):
        asyncio.run(processor.start(make_file(3), mapping))

    assert processor.state.status is RunStatus.IDLE
    assert writer.calls == []


def test_failed_validation_after_a_finished_run_returns_to_idle(writer, store, make_file) -> None:
    processor = _processor(writer, store)
    assert asyncio.run(processor.start(make_file(3), MAPPING)).status is RunStatus.COMPLETED

    with pytest.raises(ValidationError):
        asyncio.run(processor.start(make_file(3), {"first_name": "First Name"}))

    assert processor.state.status is RunStatus.IDLE
    assert len(writer.calls) == 3


def test_start_with_email_on_unknown_column_is_rejected(writer, store, make_file) -> None:
    processor = _processor(writer, store)

    with pytest.raises(ValidationError):
        asyncio.run(processor.start(make_file(3), {"email": "E-mail address"}))

    assert processor.state.status is RunStatus.IDLE


def test_invalid_json_is_nulled_and_row_still_counts(writer, store, make_file) -> None:
    parsed = make_file(12, overrides={10: {2: "{invalid"}, 11: {2: '{"plan": "pro"}'}})
    state = asyncio.run(_processor(writer, store).start(parsed, MAPPING))

    contacts = {contact["email"]: contact for _, contact, _ in writer.calls}
    assert contacts["user10@example.com"]["custom_json_1"] is None
    assert contacts["user11@example.com"]["custom_json_1"] == {"plan": "pro"}
    assert state.success_count == 12
    assert state.failure_count == 0


def test_deeply_nested_json_cell_does_not_fail_the_run(writer, store, make_file) -> None:
    parsed = make_file(3, overrides={1: {2: "[" * 100000}})

    state = asyncio.run(_processor(writer, store).start(parsed, MAPPING))

    assert state.status is RunStatus.COMPLETED
    assert state.success_count == 3
    assert writer.calls[1][1]["custom_json_1"] is None


def test_build_contact_coerces_by_field_kind(make_file) -> None:
    parsed = make_file(1, overrides={0: {1: "  ", 3: "12.50"}})
    contact = build_contact(parsed, parsed.rows[0], MAPPING)

    assert contact == {
        "email": "user0@example.com",
        "first_name": None,
        "custom_json_1": None,
        "lifetime_value": 12.5,
    }


def test_blank_email_rows_are_dropped_but_rows_advance(writer, store, make_file) -> None:
    parsed = make_file(30, blank_emails=range(0, 25, 5))
    rows_after_batch = []
    processor = _processor(writer, store, progress_callback=lambda state: rows_after_batch.append(state.row_index))

    state = asyncio.run(processor.start(parsed, MAPPING))

    assert len(writer.calls) == 25
    assert state.success_count == 25
    assert state.failure_count == 0
    assert 25 in rows_after_batch
    assert state.row_index == 30


def test_batch_without_any_email_still_checkpoints(writer, store, make_file) -> None:
    parsed = make_file(40, blank_emails=range(25))
    seen = {}
    writer.on_call = lambda count, _c: seen.setdefault("checkpoint", store.load("ws_1", "contacts.csv"))

    asyncio.run(_processor(writer, store).start(parsed, MAPPING))

    assert seen["checkpoint"].current_row_index == 25
    assert writer.emails[0] == "user25@example.com"


@pytest.mark.parametrize("failures", [7, 130])
def test_error_log_keeps_first_hundred_failures(writer, store, make_file, failures) -> None:
    parsed = make_file(150)
    writer.fail_emails = {f"user{index}@example.com" for index in range(failures)}

    state = asyncio.run(_processor(writer, store).start(parsed, MAPPING))

    assert state.failure_count == failures
    assert state.success_count == 150 - failures
    assert len(state.error_log) == min(failures, 100)
    assert [entry.line_number for entry in state.error_log] == [index + 2 for index in range(min(failures, 100))]
    assert state.error_log[0].email == "user0@example.com"
    assert state.error_log[0].error_message == "rejected user0@example.com"
    assert state.status is RunStatus.COMPLETED


def test_line_numbers_use_position_in_file(writer, store, make_file) -> None:
    parsed = make_file(12, blank_emails=[1, 2, 3])
    writer.fail_emails = {"user10@example.com"}

    state = asyncio.run(_processor(writer, store).start(parsed, MAPPING))

    assert [(entry.line_number, entry.email) for entry in state.error_log] == [(12, "user10@example.com")]


def test_target_lists_use_subscribe(writer, store, make_file) -> None:
    asyncio.run(_processor(writer, store).start(make_file(2), MAPPING, ["list_a", "list_b", "list_a"]))

    assert [list_ids for _, _, list_ids in writer.calls] == [("list_a", "list_b"), ("list_a", "list_b")]
    assert {workspace for workspace, _, _ in writer.calls} == {"ws_1"}


def test_pause_blocks_until_resume(writer, store, make_file) -> None:
    parsed = make_file(57)
    processor = _processor(writer, store)
    writer.on_call = lambda count, _c: processor.pause() if count == 30 else None

    async def scenario() -> ImportRunState:
        task = asyncio.create_task(processor.start(parsed, MAPPING))
        while processor.status is not RunStatus.PAUSED:
            await asyncio.sleep(0)
        saved = store.load("ws_1", "contacts.csv")
        assert saved is not None and saved.current_row_index == 25
        for _ in range(10):
            await asyncio.sleep(0)
        assert len(writer.calls) == 30
        assert processor.pause() is False
        assert processor.resume() is True
        return await task

    state = asyncio.run(scenario())

    assert state.status is RunStatus.COMPLETED
    assert writer.emails == [f"user{index}@example.com" for index in range(57)]


def test_cancel_mid_batch_stops_without_advancing(writer, store, make_file) -> None:
    parsed = make_file(57)
    processor = _processor(writer, store)
    writer.on_call = lambda count, _c: processor.cancel() if count == 30 else None

    state = asyncio.run(processor.start(parsed, MAPPING))

    assert state.status is RunStatus.CANCELLED
    assert state.row_index == 25
    assert len(writer.calls) == 30
    assert store.load("ws_1", "contacts.csv").current_row_index == 25
    assert processor.cancel() is False


def test_cancel_while_paused(writer, store, make_file) -> None:
    parsed = make_file(30)
    processor = _processor(writer, store)
    writer.on_call = lambda count, _c: processor.pause() if count == 3 else None

    async def scenario() -> ImportRunState:
        task = asyncio.create_task(processor.start(parsed, MAPPING))
        while processor.status is not RunStatus.PAUSED:
            await asyncio.sleep(0)
        assert processor.cancel() is True
        return await task

    state = asyncio.run(scenario())

    assert state.status is RunStatus.CANCELLED
    assert len(writer.calls) == 3
    assert processor.resume() is False


@pytest.mark.parametrize("cancel_at_call", [1, 25, 26, 40, 57])
def test_resume_from_checkpoint_processes_remaining_rows_once(writer, writer_factory, store, make_file, cancel_at_call) -> None:
    parsed = make_file(57)
    first = _processor(writer, store)
    writer.on_call = lambda count, _c: first.cancel() if count == cancel_at_call else None
    first_state = asyncio.run(first.start(parsed, MAPPING))
    assert first_state.status is RunStatus.CANCELLED

    saved = store.load("ws_1", "contacts.csv")
    resume_row = saved.current_row_index if saved else first_state.row_index
    assert resume_row == first_state.row_index

    second_writer = writer_factory()
    second = _processor(second_writer, store)
    state = asyncio.run(second.start(parsed, MAPPING, resume_from_row_index=resume_row))

    assert state.status is RunStatus.COMPLETED
    assert second_writer.emails == [f"user{index}@example.com" for index in range(resume_row, 57)]
    assert set(writer.emails) | set(second_writer.emails) == {f"user{index}@example.com" for index in range(57)}


def test_resume_from_end_of_file_completes_without_calls(writer, store, make_file) -> None:
    state = asyncio.run(_processor(writer, store).start(make_file(57), MAPPING, resume_from_row_index=57))

    assert state.status is RunStatus.COMPLETED
    assert writer.calls == []


def test_unexpected_error_fails_the_run(writer, store, make_file) -> None:
    raised = []

    def explode(state: ImportRunState) -> None:
        if state.success_count == 3 and not raised:
            raised.append(True)
            raise RuntimeError("progress view crashed")

    processor = _processor(writer, store, progress_callback=explode)
    state = asyncio.run(processor.start(make_file(10), MAPPING))

    assert state.status is RunStatus.FAILED
    assert state.fatal_error == "progress view crashed"
    assert store.load("ws_1", "contacts.csv").current_row_index == 0


def test_checkpoint_write_failures_do_not_stop_the_run(writer, clock, make_file, caplog) -> None:
    class BrokenStorage:
        def get_item(self, key):
            return None

        def set_item(self, key, value):
            raise PersistenceError("quota exceeded")

        def remove_item(self, key):
            return None

    store = CheckpointStore(BrokenStorage(), clock=clock)
    state = asyncio.run(_processor(writer, store).start(make_file(30), MAPPING))

    assert state.status is RunStatus.COMPLETED
    assert state.success_count == 30
    assert "Error saving progress" in caplog.text


def test_processor_can_run_again_after_completion(writer, store, make_file) -> None:
    processor = _processor(writer, store)
    asyncio.run(processor.start(make_file(3), MAPPING))
    writer.fail_emails = {"user0@example.com"}

    state = asyncio.run(processor.start(make_file(3), MAPPING))

    assert state.success_count == 2
    assert state.failure_count == 1
    assert len(state.error_log) == 1
