"""SQLite-backed ledger primitives.

Every balance mutation is paired with one or two immutable rows in the
``transactions`` table, written in the same SQLite transaction and
committed before the call returns.  ``LedgerStore`` owns the database
file; the catalog views (``envelopes``, ``accounts``, ``groups``,
``scheduled_payments``) implement the collaborator interfaces in
:mod:`payday_cockpit.ports`.
"""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple, Union

import pandas as pd

from .config import DB_PATH, INITIAL_BALANCE_DESCRIPTION, ensure_data_directories
from .errors import InsufficientFundsError, LedgerError
from .formatting import round_money
from .logger_config import get_logger
from .models import Account, Envelope, Group, ScheduledPayment, Transaction, TransactionType

logger = get_logger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS envelopes (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    current_amount REAL NOT NULL DEFAULT 0,
    target_amount REAL,
    target_date TEXT,
    cash_flow_enabled INTEGER NOT NULL DEFAULT 0,
    cash_flow_amount REAL,
    group_id TEXT,
    linked_account_id TEXT,
    user_id TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    current_balance REAL NOT NULL DEFAULT 0,
    is_default INTEGER NOT NULL DEFAULT 0,
    user_id TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS binders (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    user_id TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS scheduled_payments (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    amount REAL NOT NULL,
    next_due_date TEXT NOT NULL,
    envelope_id TEXT,
    user_id TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS transactions (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    type TEXT NOT NULL,
    amount REAL NOT NULL,
    date TEXT NOT NULL,
    description TEXT,
    user_id TEXT,
    envelope_id TEXT,
    account_id TEXT,
    transfer_direction TEXT,
    transfer_link_id TEXT,
    impact TEXT
);

CREATE INDEX IF NOT EXISTS ix_txn_envelope ON transactions (envelope_id);
CREATE INDEX IF NOT EXISTS ix_txn_account ON transactions (account_id);
CREATE INDEX IF NOT EXISTS ix_txn_date ON transactions (date);
"""


def _new_id() -> str:
    return uuid.uuid4().hex


def _to_iso(value: Union[date, datetime, None]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _positive_amount(amount: float) -> float:
    rounded = round_money(amount)
    if rounded <= 0:
        raise LedgerError(f"Ledger amounts must be positive, got {amount!r}")
    return rounded


class LedgerStore:
    """Owns the ledger database and hands out the catalog views."""

    def __init__(self, db_path: Union[str, Path, None] = None, user_id: str = ''):
        self.db_path = Path(db_path) if db_path is not None else DB_PATH
        self.user_id = user_id
        self.envelopes = EnvelopeLedger(self)
        self.accounts = AccountLedger(self)
        self.groups = GroupLedger(self)
        self.scheduled_payments = ScheduledPaymentLedger(self)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path == DB_PATH:
            ensure_data_directories()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    # -- seeding ---------------------------------------------------------

    def upsert_envelope(self, envelope: Envelope) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO envelopes (id, name, current_amount, target_amount, target_date, "
                "cash_flow_enabled, cash_flow_amount, group_id, linked_account_id, user_id) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    envelope.id,
                    envelope.name,
                    float(envelope.current_amount),
                    envelope.target_amount,
                    _to_iso(envelope.target_date),
                    1 if envelope.cash_flow_enabled else 0,
                    envelope.cash_flow_amount,
                    envelope.group_id,
                    envelope.linked_account_id,
                    envelope.user_id or self.user_id,
                ),
            )
            conn.commit()

    def upsert_account(self, account: Account) -> None:
        with self.connect() as conn:
            if account.is_default:
                conn.execute(
                    "UPDATE accounts SET is_default = 0 WHERE id != ? AND user_id = ?",
                    (account.id, account.user_id or self.user_id),
                )
            conn.execute(
                "INSERT OR REPLACE INTO accounts (id, name, current_balance, is_default, user_id) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    account.id,
                    account.name,
                    float(account.current_balance),
                    1 if account.is_default else 0,
                    account.user_id or self.user_id,
                ),
            )
            conn.commit()

    def upsert_group(self, group: Group) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO binders (id, name, user_id) VALUES (?, ?, ?)",
                (group.id, group.name, group.user_id or self.user_id),
            )
            conn.commit()

    def upsert_scheduled_payment(self, payment: ScheduledPayment) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO scheduled_payments (id, name, amount, next_due_date, envelope_id, user_id) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    payment.id,
                    payment.name,
                    float(payment.amount),
                    _to_iso(payment.next_due_date),
                    payment.envelope_id,
                    payment.user_id or self.user_id,
                ),
            )
            conn.commit()

    # -- history ---------------------------------------------------------

    def fetch_transactions(
        self,
        envelope_id: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> pd.DataFrame:
        where: List[str] = []
        params: List[Any] = []
        if envelope_id:
            where.append("envelope_id = ?")
            params.append(envelope_id)
        if account_id:
            where.append("account_id = ?")
            params.append(account_id)

        sql = (
            "SELECT id, type AS 'Type', amount AS 'Amount', date AS 'Date', description AS 'Description', "
            "envelope_id, account_id, transfer_direction, transfer_link_id, impact FROM transactions"
        )
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY date ASC, seq ASC"

        with self.connect() as conn:
            df = pd.read_sql_query(sql, conn, params=params)
        if not df.empty:
            df['Date'] = pd.to_datetime(df['Date'], format='ISO8601')
        return df

    def transaction_count(self) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM transactions").fetchone()
        return int(row[0])

    # -- internals shared by the catalog views ---------------------------

    def _insert_transaction(self, conn: sqlite3.Connection, txn: Transaction) -> None:
        conn.execute(
            "INSERT INTO transactions (id, type, amount, date, description, user_id, envelope_id, account_id, "
            "transfer_direction, transfer_link_id, impact) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                txn.id,
                txn.type.value,
                txn.amount,
                _to_iso(txn.date),
                txn.description,
                txn.user_id,
                txn.envelope_id,
                txn.account_id,
                txn.transfer_direction,
                txn.transfer_link_id,
                txn.impact,
            ),
        )


def _envelope_from_row(row: sqlite3.Row) -> Envelope:
    return Envelope(
        id=row['id'],
        name=row['name'],
        current_amount=float(row['current_amount']),
        target_amount=row['target_amount'],
        target_date=_parse_date(row['target_date']),
        cash_flow_enabled=bool(row['cash_flow_enabled']),
        cash_flow_amount=row['cash_flow_amount'],
        group_id=row['group_id'],
        linked_account_id=row['linked_account_id'],
        user_id=row['user_id'] or '',
    )


def _account_from_row(row: sqlite3.Row) -> Account:
    return Account(
        id=row['id'],
        name=row['name'],
        current_balance=float(row['current_balance']),
        is_default=bool(row['is_default']),
        user_id=row['user_id'] or '',
    )


class EnvelopeLedger:
    """Envelope catalog: listing plus external (virtual income) deposits."""

    def __init__(self, store: LedgerStore):
        self._store = store

    def list_envelopes(self) -> List[Envelope]:
        with self._store.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM envelopes WHERE user_id = ? ORDER BY lower(name), id",
                (self._store.user_id,),
            ).fetchall()
        return [_envelope_from_row(row) for row in rows]

    def get_envelope(self, envelope_id: str) -> Optional[Envelope]:
        with self._store.connect() as conn:
            row = conn.execute(
                "SELECT * FROM envelopes WHERE id = ? AND user_id = ?",
                (envelope_id, self._store.user_id),
            ).fetchone()
        return _envelope_from_row(row) if row else None

    def deposit(self, envelope_id: str, amount: float, description: str, date: datetime) -> Transaction:
        value = _positive_amount(amount)
        txn = Transaction(
            id=_new_id(),
            type=TransactionType.DEPOSIT,
            amount=value,
            date=date,
            description=description,
            user_id=self._store.user_id,
            envelope_id=envelope_id,
            impact='external',
        )
        with self._store.connect() as conn:
            cursor = conn.execute(
                "UPDATE envelopes SET current_amount = round(current_amount + ?, 2) WHERE id = ? AND user_id = ?",
                (value, envelope_id, self._store.user_id),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                raise LedgerError(f"Envelope not found: {envelope_id}")
            self._store._insert_transaction(conn, txn)
            conn.commit()
        logger.debug("Deposited %.2f into envelope %s (%s)", value, envelope_id, description)
        return txn

    def withdraw(self, envelope_id: str, amount: float, description: str, date: datetime) -> Transaction:
        value = _positive_amount(amount)
        txn = Transaction(
            id=_new_id(),
            type=TransactionType.WITHDRAWAL,
            amount=value,
            date=date,
            description=description,
            user_id=self._store.user_id,
            envelope_id=envelope_id,
            impact='external',
        )
        with self._store.connect() as conn:
            cursor = conn.execute(
                "UPDATE envelopes SET current_amount = round(current_amount - ?, 2) WHERE id = ? AND user_id = ?",
                (value, envelope_id, self._store.user_id),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                raise LedgerError(f"Envelope not found: {envelope_id}")
            self._store._insert_transaction(conn, txn)
            conn.commit()
        logger.debug("Withdrew %.2f from envelope %s (%s)", value, envelope_id, description)
        return txn


class AccountLedger:
    """Account catalog: deposits, withdrawals, balance adjustments and
    account-to-envelope transfers."""

    def __init__(self, store: LedgerStore):
        self._store = store

    def list_accounts(self) -> List[Account]:
        with self._store.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM accounts WHERE user_id = ? ORDER BY lower(name), id",
                (self._store.user_id,),
            ).fetchall()
        return [_account_from_row(row) for row in rows]

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._store.connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE id = ? AND user_id = ?",
                (account_id, self._store.user_id),
            ).fetchone()
        return _account_from_row(row) if row else None

    def get_default_account(self) -> Optional[Account]:
        return next((a for a in self.list_accounts() if a.is_default), None)

    def set_default_account(self, account_id: str) -> None:
        with self._store.connect() as conn:
            self._require(conn, account_id)
            conn.execute(
                "UPDATE accounts SET is_default = CASE WHEN id = ? THEN 1 ELSE 0 END WHERE user_id = ?",
                (account_id, self._store.user_id),
            )
            conn.commit()

    def _require(self, conn: sqlite3.Connection, account_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM accounts WHERE id = ? AND user_id = ?",
            (account_id, self._store.user_id),
        ).fetchone()
        if row is None:
            raise LedgerError(f"Account not found: {account_id}")
        return row

    def deposit(self, account_id: str, amount: float, description: str = 'Deposit') -> Transaction:
        value = _positive_amount(amount)
        with self._store.connect() as conn:
            row = self._require(conn, account_id)
            has_history = conn.execute(
                "SELECT 1 FROM transactions WHERE account_id = ? LIMIT 1", (account_id,)
            ).fetchone()
            if float(row['current_balance']) == 0 and has_history is None:
                description = INITIAL_BALANCE_DESCRIPTION
            txn = Transaction(
                id=_new_id(),
                type=TransactionType.DEPOSIT,
                amount=value,
                date=datetime.now(),
                description=description or 'Deposit',
                user_id=self._store.user_id,
                account_id=account_id,
                impact='external',
            )
            conn.execute(
                "UPDATE accounts SET current_balance = round(current_balance + ?, 2) WHERE id = ?",
                (value, account_id),
            )
            self._store._insert_transaction(conn, txn)
            conn.commit()
        logger.debug("Deposited %.2f into account %s", value, account_id)
        return txn

    def withdraw(self, account_id: str, amount: float, description: str = 'Withdrawal') -> Transaction:
        value = _positive_amount(amount)
        txn = Transaction(
            id=_new_id(),
            type=TransactionType.WITHDRAWAL,
            amount=value,
            date=datetime.now(),
            description=description or 'Withdrawal',
            user_id=self._store.user_id,
            account_id=account_id,
            impact='external',
        )
        with self._store.connect() as conn:
            self._require(conn, account_id)
            conn.execute(
                "UPDATE accounts SET current_balance = round(current_balance - ?, 2) WHERE id = ?",
                (value, account_id),
            )
            self._store._insert_transaction(conn, txn)
            conn.commit()
        logger.debug("Withdrew %.2f from account %s", value, account_id)
        return txn

    def adjust_balance(self, account_id: str, amount: float) -> Transaction:
        delta = round_money(amount)
        if delta == 0:
            raise LedgerError("Balance adjustments must be non-zero")
        txn = Transaction(
            id=_new_id(),
            type=TransactionType.DEPOSIT if delta > 0 else TransactionType.WITHDRAWAL,
            amount=abs(delta),
            date=datetime.now(),
            description='Balance adjustment',
            user_id=self._store.user_id,
            account_id=account_id,
            impact='internal',
        )
        with self._store.connect() as conn:
            self._require(conn, account_id)
            conn.execute(
                "UPDATE accounts SET current_balance = round(current_balance + ?, 2) WHERE id = ?",
                (delta, account_id),
            )
            self._store._insert_transaction(conn, txn)
            conn.commit()
        return txn

    def transfer_to_envelope(
        self,
        account_id: str,
        envelope_id: str,
        amount: float,
        description: str,
        date: datetime,
    ) -> Tuple[Transaction, Transaction]:
        value = _positive_amount(amount)
        link_id = _new_id()
        outgoing = Transaction(
            id=_new_id(),
            type=TransactionType.TRANSFER,
            amount=value,
            date=date,
            description=description,
            user_id=self._store.user_id,
            account_id=account_id,
            transfer_direction='out',
            transfer_link_id=link_id,
            impact='internal',
        )
        incoming = Transaction(
            id=_new_id(),
            type=TransactionType.TRANSFER,
            amount=value,
            date=date,
            description=description,
            user_id=self._store.user_id,
            envelope_id=envelope_id,
            account_id=account_id,
            transfer_direction='in',
            transfer_link_id=link_id,
            impact='internal',
        )
        with self._store.connect() as conn:
            row = self._require(conn, account_id)
            balance = float(row['current_balance'])
            if balance < value:
                raise InsufficientFundsError(account_id, balance, value)
            envelope = conn.execute(
                "SELECT id FROM envelopes WHERE id = ? AND user_id = ?",
                (envelope_id, self._store.user_id),
            ).fetchone()
            if envelope is None:
                raise LedgerError(f"Envelope not found: {envelope_id}")
            conn.execute(
                "UPDATE accounts SET current_balance = round(current_balance - ?, 2) WHERE id = ?",
                (value, account_id),
            )
            conn.execute(
                "UPDATE envelopes SET current_amount = round(current_amount + ?, 2) WHERE id = ? AND user_id = ?",
                (value, envelope_id, self._store.user_id),
            )
            self._store._insert_transaction(conn, outgoing)
            self._store._insert_transaction(conn, incoming)
            conn.commit()
        logger.debug("Transferred %.2f from account %s to envelope %s", value, account_id, envelope_id)
        return outgoing, incoming


class GroupLedger:
    def __init__(self, store: LedgerStore):
        self._store = store

    def list_groups(self) -> List[Group]:
        with self._store.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM binders WHERE user_id = ? ORDER BY lower(name), id",
                (self._store.user_id,),
            ).fetchall()
        return [Group(id=row['id'], name=row['name'], user_id=row['user_id'] or '') for row in rows]


class ScheduledPaymentLedger:
    def __init__(self, store: LedgerStore):
        self._store = store

    def list_upcoming(self) -> List[ScheduledPayment]:
        with self._store.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM scheduled_payments WHERE user_id = ? ORDER BY next_due_date, id",
                (self._store.user_id,),
            ).fetchall()
        return [
            ScheduledPayment(
                id=row['id'],
                name=row['name'],
                amount=float(row['amount']),
                next_due_date=_parse_datetime(row['next_due_date']),
                envelope_id=row['envelope_id'],
                user_id=row['user_id'] or '',
            )
            for row in rows
        ]
