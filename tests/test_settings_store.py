from __future__ import annotations

from datetime import datetime

import pytest

from payday_cockpit.models import PayDaySettings
from payday_cockpit.settings_store import JsonPayDaySettingsStore, record_pay_event


def test_missing_file_reads_as_none(settings_store):
    assert settings_store.read() is None


def test_corrupt_file_reads_as_none(tmp_path):
    target = tmp_path / 'settings.json'
    target.write_text('{not json', encoding='utf-8')
    assert JsonPayDaySettingsStore('u1', target).read() is None


def test_corrupt_file_is_moved_aside_before_writing(tmp_path):
    target = tmp_path / 'settings.json'
    target.write_text('{"u2": {"last_pay_amount": 50.0', encoding='utf-8')

    JsonPayDaySettingsStore('u1', target).write(PayDaySettings('u1', last_pay_amount=1000.0))

    backup = tmp_path / 'settings.json.corrupt'
    assert backup.read_text(encoding='utf-8') == '{"u2": {"last_pay_amount": 50.0'
    assert JsonPayDaySettingsStore('u1', target).read().last_pay_amount == 1000.0


def test_records_are_kept_per_user(tmp_path):
    target = tmp_path / 'settings.json'
    JsonPayDaySettingsStore('u1', target).write(PayDaySettings('u1', last_pay_amount=1000.0))
    JsonPayDaySettingsStore('u2', target).write(PayDaySettings('u2', last_pay_amount=50.0, pay_frequency='weekly'))

    first = JsonPayDaySettingsStore('u1', target).read()
    second = JsonPayDaySettingsStore('u2', target).read()

    assert first.last_pay_amount == 1000.0
    assert first.pay_frequency == 'monthly'
    assert second.pay_frequency == 'weekly'


def test_record_pay_event_creates_monthly_record(settings_store):
    when = datetime(2024, 1, 31, 9, 0)
    settings = record_pay_event(settings_store, 'u1', 1000.0, 'acc1', when=when)

    stored = settings_store.read()
    assert stored == settings
    assert stored.last_pay_date == when
    assert stored.default_account_id == 'acc1'
    assert stored.next_pay_date() == datetime(2024, 2, 29, 9, 0)


def test_record_pay_event_keeps_frequency_and_expected_amount(settings_store):
    settings_store.write(
        PayDaySettings('u1', expected_pay_amount=1500.0, pay_frequency='biweekly', default_account_id='acc1')
    )

    updated = record_pay_event(settings_store, 'u1', 1400.0, None, when=datetime(2024, 3, 1))

    assert updated.pay_frequency == 'biweekly'
    assert updated.expected_pay_amount == 1500.0
    assert updated.default_account_id == 'acc1'
    assert updated.prefill_amount() == 1500.0


@pytest.mark.parametrize(
    'frequency, expected',
    [
        ('weekly', datetime(2024, 1, 8)),
        ('biweekly', datetime(2024, 1, 15)),
        ('semimonthly', datetime(2024, 1, 16)),
        ('monthly', datetime(2024, 2, 1)),
        ('quarterly', datetime(2024, 1, 31)),
    ],
)
def test_next_pay_date_by_frequency(frequency, expected):
    settings = PayDaySettings('u1', last_pay_date=datetime(2024, 1, 1), pay_frequency=frequency)
    assert settings.next_pay_date() == expected


def test_prefill_amount_fallbacks():
    assert PayDaySettings('u1').prefill_amount() == 0.0
    assert PayDaySettings('u1', last_pay_amount=900.0).prefill_amount() == 900.0
    assert PayDaySettings('u1', last_pay_amount=900.0, expected_pay_amount=0.0).prefill_amount() == 900.0
