"""Tests for audit CSV rendering."""

import csv
import io
import uuid
from datetime import UTC, datetime

import pytest

from buildtrack.domain.audit import CSV_COLUMNS, AuditCsvRow, render_audit_csv, to_json_safe

pytestmark = pytest.mark.unit


def _row(**overrides) -> AuditCsvRow:
    values = {
        "created_at": datetime(2024, 3, 1, 9, 30, tzinfo=UTC),
        "actor_name": "Olivia Owner",
        "actor_email": "owner@example.com",
        "role": "OWNER",
        "action_type": "BOQ_REVISE",
        "entity_type": "BOQ",
        "entity_id": str(uuid.UUID(int=1)),
        "before": {"revision_number": 1},
        "after": {"revision_number": 2},
        "reason": "Scope change",
    }
    values.update(overrides)
    return AuditCsvRow(**values)


def _parse(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


def test_header_only_when_empty():
    assert _parse(render_audit_csv([])) == [CSV_COLUMNS]


def test_every_cell_is_quoted():
    text = render_audit_csv([_row()])
    first_line = text.splitlines()[0]
    assert first_line == ",".join(f'"{c}"' for c in CSV_COLUMNS)


def test_row_values_in_column_order():
    rows = _parse(render_audit_csv([_row()]))

    assert rows[1] == [
        "2024-03-01T09:30:00+00:00",
        "Olivia Owner",
        "owner@example.com",
        "OWNER",
        "BOQ_REVISE",
        "BOQ",
        str(uuid.UUID(int=1)),
        '{"revision_number": 1}',
        '{"revision_number": 2}',
        "Scope change",
    ]


def test_reason_with_comma_quote_and_newline_survives():
    reason = 'Client said "add, then remove"\nsecond line'
    text = render_audit_csv([_row(reason=reason)])

    assert '"Client said ""add, then remove""\nsecond line"' in text
    assert _parse(text)[1][9] == reason


def test_missing_snapshots_render_empty():
    rows = _parse(render_audit_csv([_row(before=None, after=None, reason=None, actor_name=None)]))
    assert rows[1][1] == ""
    assert rows[1][7] == ""
    assert rows[1][8] == ""
    assert rows[1][9] == ""


def test_snapshot_keys_sorted():
    rows = _parse(render_audit_csv([_row(after={"b": 1, "a": 2})]))
    assert rows[1][8] == '{"a": 2, "b": 1}'


def test_to_json_safe_stringifies_uuids_and_datetimes():
    value = {"id": uuid.UUID(int=5), "at": datetime(2024, 1, 1, tzinfo=UTC)}
    assert to_json_safe(value) == {"id": str(uuid.UUID(int=5)), "at": "2024-01-01 00:00:00+00:00"}
