from __future__ import annotations

from datetime import date, datetime

import pytest

from payday_cockpit.ledger import LedgerStore
from payday_cockpit.models import Envelope
from payday_cockpit.settings_store import JsonPayDaySettingsStore

NOW = datetime(2024, 1, 1, 12, 0, 0)


def make_envelopes():
    """Envelope A has a horizon, envelope B is plain autopilot."""
    return [
        Envelope(
            id='a',
            name='A',
            current_amount=1200.0,
            target_amount=2000.0,
            target_date=date(2024, 12, 31),
            cash_flow_enabled=True,
            cash_flow_amount=400.0,
        ),
        Envelope(id='b', name='B', cash_flow_enabled=True, cash_flow_amount=300.0),
    ]


@pytest.fixture
def ledger(tmp_path) -> LedgerStore:
    store = LedgerStore(tmp_path / 'ledger.db', user_id='u1')
    store.init_db()
    for envelope in make_envelopes():
        store.upsert_envelope(envelope)
    return store


@pytest.fixture
def settings_store(tmp_path) -> JsonPayDaySettingsStore:
    return JsonPayDaySettingsStore('u1', tmp_path / 'settings.json')
