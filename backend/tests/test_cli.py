"""Test the Flask CLI commands."""
import json

import pytest

from conftest import MULTI_DAY_ACTIVITY


@pytest.fixture
def activity_file(tmp_path):
    path = tmp_path / 'activity.json'
    path.write_text(json.dumps(MULTI_DAY_ACTIVITY, ensure_ascii=False), encoding='utf-8')
    return str(path)


def test_preview_schedule(app, activity_file):
    result = app.test_cli_runner().invoke(args=['preview-schedule', activity_file])

    assert result.exit_code == 0, result.output
    assert 'Mùa hè xanh (multiple_days), 2 day(s)' in result.output
    assert 'Ngày 1 - 10/03/2025' in result.output
    assert 'Buổi Sáng 08:00-11:00: 10.776900, 106.700900 r=150m [day_slot] Trường THCS A' in result.output
    assert 'Buổi Chiều 13:30-17:00: no location required' in result.output


def test_slot_states_for_every_slot(app, activity_file):
    result = app.test_cli_runner().invoke(args=['slot-states', activity_file, '--at', '2025-03-10T07:50:00'])

    assert result.exit_code == 0, result.output
    assert 'Ngày 1 - Buổi Sáng [start] available' in result.output
    assert 'Ngày 2 - Buổi Chiều [end] not_started' in result.output
    assert 'Open for check-in: Ngày 1 - Buổi Sáng [start]' in result.output


def test_slot_states_for_participant(app, activity_file):
    participant = json.dumps({'userId': 'u1', 'registeredDaySlots': [{'day': 2, 'slot': 'morning'}]})
    result = app.test_cli_runner().invoke(
        args=['slot-states', activity_file, '--at', '2025-03-10T07:50:00', '--participant', participant]
    )

    assert result.exit_code == 0, result.output
    assert 'Ngày 1 - Buổi Sáng' not in result.output
    assert 'Ngày 2 - Buổi Sáng [start] not_started' in result.output
    assert 'No slot open for check-in' in result.output


def test_slot_states_bad_timestamp(app, activity_file):
    result = app.test_cli_runner().invoke(args=['slot-states', activity_file, '--at', 'soon'])
    assert result.exit_code != 0
