"""Tests for the SQLite ledger primitives."""

from __future__ import annotations

from datetime import datetime

import pytest

from payday_cockpit.config import INITIAL_BALANCE_DESCRIPTION
from payday_cockpit.errors import InsufficientFundsError, LedgerError
from payday_cockpit.ledger import LedgerStore
from payday_cockpit.models import Account, Envelope, Group, ScheduledPayment, TransactionType

WHEN = datetime(2024, 1, 1, 12, 0, 0)


def test_catalog_listing(ledger):
    ledger.upsert_group(Group(id='g1', name='Bills'))

    assert [env.id for env in ledger.envelopes.list_envelopes()] == ['a', 'b']
    envelope = ledger.envelopes.get_envelope('a')
    assert envelope.target_amount == 2000.0
    assert envelope.autopilot_amount == 400.0
    assert [grp.name for grp in ledger.groups.list_groups()] == ['Bills']
    assert ledger.envelopes.get_envelope('missing') is None


def test_envelope_deposit_writes_transaction(ledger):
    txn = ledger.envelopes.deposit('a', 400.0, 'Cash Flow', WHEN)

    assert txn.type == TransactionType.DEPOSIT
    assert ledger.envelopes.get_envelope('a').current_amount == pytest.approx(1600.0)

    history = ledger.fetch_transactions(envelope_id='a')
    assert list(history.columns[:5]) == ['id', 'Type', 'Amount', 'Date', 'Description']
    assert history.iloc[0]['Description'] == 'Cash Flow'
    assert history.iloc[0]['Amount'] == pytest.approx(400.0)


def test_deposit_into_unknown_envelope_fails_cleanly(ledger):
    with pytest.raises(LedgerError):
        ledger.envelopes.deposit('missing', 10.0, 'Cash Flow', WHEN)
    assert ledger.transaction_count() == 0


def test_envelope_withdraw(ledger):
    txn = ledger.envelopes.withdraw('a', 200.0, 'Flights', WHEN)

    assert txn.type == TransactionType.WITHDRAWAL
    assert ledger.envelopes.get_envelope('a').current_amount == pytest.approx(1000.0)
    with pytest.raises(LedgerError):
        ledger.envelopes.withdraw('missing', 1.0, 'Flights', WHEN)


def test_non_positive_amounts_rejected(ledger):
    with pytest.raises(LedgerError):
        ledger.envelopes.deposit('a', 0.0, 'Cash Flow', WHEN)
    with pytest.raises(LedgerError):
        ledger.envelopes.deposit('a', -5.0, 'Cash Flow', WHEN)


def test_first_account_deposit_is_initial_balance(ledger):
    ledger.upsert_account(Account(id='acc1', name='Checking'))

    first = ledger.accounts.deposit('acc1', 100.0, 'Pay Day Deposit')
    second = ledger.accounts.deposit('acc1', 50.0, 'Pay Day Deposit')

    assert first.description == INITIAL_BALANCE_DESCRIPTION
    assert second.description == 'Pay Day Deposit'
    assert ledger.accounts.get_account('acc1').current_balance == pytest.approx(150.0)


def test_transfer_creates_linked_pair(ledger):
    ledger.upsert_account(Account(id='acc1', name='Checking', current_balance=500.0))

    outgoing, incoming = ledger.accounts.transfer_to_envelope('acc1', 'b', 300.0, 'Cash Flow', WHEN)

    assert outgoing.transfer_link_id == incoming.transfer_link_id
    assert (outgoing.transfer_direction, incoming.transfer_direction) == ('out', 'in')
    assert outgoing.impact == incoming.impact == 'internal'
    assert ledger.accounts.get_account('acc1').current_balance == pytest.approx(200.0)
    assert ledger.envelopes.get_envelope('b').current_amount == pytest.approx(300.0)
    assert ledger.transaction_count() == 2


def test_transfer_with_insufficient_funds_changes_nothing(ledger):
    ledger.upsert_account(Account(id='acc1', name='Checking', current_balance=100.0))

    with pytest.raises(InsufficientFundsError) as excinfo:
        ledger.accounts.transfer_to_envelope('acc1', 'b', 300.0, 'Cash Flow', WHEN)

    assert excinfo.value.balance == pytest.approx(100.0)
    assert ledger.accounts.get_account('acc1').current_balance == pytest.approx(100.0)
    assert ledger.envelopes.get_envelope('b').current_amount == 0.0
    assert ledger.transaction_count() == 0


def test_default_account_is_unique(ledger):
    ledger.upsert_account(Account(id='acc1', name='Checking', is_default=True))
    ledger.upsert_account(Account(id='acc2', name='Savings'))

    ledger.accounts.set_default_account('acc2')

    assert ledger.accounts.get_default_account().id == 'acc2'
    assert not ledger.accounts.get_account('acc1').is_default
    with pytest.raises(LedgerError):
        ledger.accounts.set_default_account('nope')


def test_withdraw_and_adjust_balance(ledger):
    ledger.upsert_account(Account(id='acc1', name='Checking', current_balance=100.0))

    ledger.accounts.withdraw('acc1', 30.0, 'Groceries')
    adjustment = ledger.accounts.adjust_balance('acc1', -20.0)

    assert adjustment.type == TransactionType.WITHDRAWAL
    assert adjustment.amount == pytest.approx(20.0)
    assert ledger.accounts.get_account('acc1').current_balance == pytest.approx(50.0)
    with pytest.raises(LedgerError):
        ledger.accounts.adjust_balance('acc1', 0.0)


def test_scheduled_payments_sorted_by_due_date(ledger):
    ledger.upsert_scheduled_payment(ScheduledPayment('p2', 'Phone', 60.0, datetime(2024, 1, 20), 'b'))
    ledger.upsert_scheduled_payment(ScheduledPayment('p1', 'Rent', 900.0, datetime(2024, 1, 5), 'a'))

    upcoming = ledger.scheduled_payments.list_upcoming()

    assert [payment.id for payment in upcoming] == ['p1', 'p2']
    assert upcoming[0].next_due_date == datetime(2024, 1, 5)


def test_fetch_transactions_empty_frame(ledger):
    assert ledger.fetch_transactions(account_id='acc1').empty


def test_users_sharing_a_database_see_only_their_own_rows(ledger):
    other = LedgerStore(ledger.db_path, user_id='u2')
    other.upsert_envelope(Envelope(id='z', name='Zoo Trip', cash_flow_enabled=True, cash_flow_amount=50.0))
    other.upsert_account(Account(id='acc2', name='Joint', current_balance=80.0, is_default=True))
    other.upsert_group(Group(id='g2', name='Travel'))
    other.upsert_scheduled_payment(ScheduledPayment('p9', 'Gym', 30.0, datetime(2024, 1, 9), 'z'))
    ledger.upsert_account(Account(id='acc1', name='Checking', is_default=True))

    assert [env.id for env in ledger.envelopes.list_envelopes()] == ['a', 'b']
    assert [env.id for env in other.envelopes.list_envelopes()] == ['z']
    assert ledger.envelopes.get_envelope('z') is None
    assert [acc.id for acc in ledger.accounts.list_accounts()] == ['acc1']
    assert other.accounts.get_default_account().id == 'acc2'
    assert ledger.groups.list_groups() == []
    assert ledger.scheduled_payments.list_upcoming() == []
    assert other.scheduled_payments.list_upcoming()[0].user_id == 'u2'
    with pytest.raises(LedgerError):
        ledger.envelopes.deposit('z', 10.0, 'Cash Flow', WHEN)
    assert other.envelopes.get_envelope('z').current_amount == 0.0
