# tests/conftest.py
import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
import EventLogAnalyzer as ela


class FakeEventLog:
    """Stands in for the Windows Event Log: returns canned records per Event ID and records every call."""

    def __init__(self, records_by_id=None, failing_ids=()):
        self.records_by_id = records_by_id or {}
        self.failing_ids = set(failing_ids)
        self.calls = []

    def __call__(self, log_name, event_id, start_time, provider_name=None, levels=None, max_events=50):
        self.calls.append({
            'log_name': log_name,
            'event_id': event_id,
            'start_time': start_time,
            'provider_name': provider_name,
            'levels': levels,
            'max_events': max_events,
        })
        if event_id in self.failing_ids:
            raise ela.EventLogQueryError(f"Security log: Access denied (Event ID {event_id})")
        return list(self.records_by_id.get(event_id, []))

    @property
    def queried_ids(self):
        return [c['event_id'] for c in self.calls]


def make_record(event_id, message='Test message', user=None, level='Information', log_name='System',
                provider='TestProvider', computer='WS01', when=None, properties=()):
    return {
        'time_created': when or datetime(2024, 1, 1, 12, 0, 0),
        'id': event_id,
        'log_name': log_name,
        'provider_name': provider,
        'level': None,
        'level_display_name': level,
        'machine_name': computer,
        'user_id': user,
        'message': message,
        'properties': list(properties),
    }


def scripted_input(answers):
    """input() replacement answering from a list, then behaving like a closed console."""
    it = iter(answers)

    def fake_input(prompt=''):
        try:
            return next(it)
        except StopIteration:
            raise EOFError
    return fake_input


@pytest.fixture(autouse=True)
def no_colorama_init(monkeypatch):
    monkeypatch.setattr(ela, 'colorama_init', lambda **kwargs: None)


@pytest.fixture
def catalog():
    return ela.get_default_catalog()


@pytest.fixture
def presets_path(tmp_path):
    return str(tmp_path / 'UserPresets.json')
