"""Persistence helpers for pay day settings (last pay, frequency, default account)."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DEFAULT_PAY_FREQUENCY, SETTINGS_PATH
from .logger_config import get_logger
from .models import PayDaySettings
from .ports import PayDaySettingsStore

logger = get_logger(__name__)


def _read_payload(target: Path) -> Optional[Dict[str, Any]]:
    """Return the stored mapping, ``{}`` for a missing file, None when unreadable."""
    if not target.exists():
        return {}
    try:
        with target.open('r', encoding='utf-8') as handle:
            data = json.load(handle)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Could not read pay day settings from %s: %s", target, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Pay day settings in %s are not a mapping", target)
        return None
    return data


def _load_all(target: Path) -> Dict[str, Any]:
    data = _read_payload(target)
    return data if data is not None else {}


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _parse_amount(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def settings_from_dict(user_id: str, data: Dict[str, Any]) -> PayDaySettings:
    return PayDaySettings(
        user_id=user_id,
        last_pay_amount=_parse_amount(data.get('last_pay_amount')),
        last_pay_date=_parse_datetime(data.get('last_pay_date')),
        expected_pay_amount=_parse_amount(data.get('expected_pay_amount')),
        pay_frequency=data.get('pay_frequency') or DEFAULT_PAY_FREQUENCY,
        default_account_id=data.get('default_account_id') or None,
    )


def settings_to_dict(settings: PayDaySettings) -> Dict[str, Any]:
    return {
        'last_pay_amount': settings.last_pay_amount,
        'last_pay_date': settings.last_pay_date.isoformat() if settings.last_pay_date else None,
        'expected_pay_amount': settings.expected_pay_amount,
        'pay_frequency': settings.pay_frequency,
        'default_account_id': settings.default_account_id,
    }


class JsonPayDaySettingsStore:
    """Stores one settings record per user in a shared JSON file."""

    def __init__(self, user_id: str, path: Optional[Path] = None):
        self.user_id = user_id
        self.path = Path(path) if path is not None else SETTINGS_PATH

    def read(self) -> Optional[PayDaySettings]:
        entry = _load_all(self.path).get(self.user_id)
        if not isinstance(entry, dict):
            return None
        return settings_from_dict(self.user_id, entry)

    def write(self, settings: PayDaySettings) -> None:
        payload = _read_payload(self.path)
        if payload is None:
            # keep the unreadable file aside instead of overwriting other users' records
            backup = self.path.with_name(self.path.name + '.corrupt')
            self.path.replace(backup)
            logger.warning("Moved unreadable pay day settings %s to %s", self.path, backup)
            payload = {}
        payload[settings.user_id or self.user_id] = settings_to_dict(settings)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open('w', encoding='utf-8') as handle:
            json.dump(payload, handle, indent=2, sort_keys=True)


def record_pay_event(
    store: PayDaySettingsStore,
    user_id: str,
    amount: float,
    account_id: Optional[str],
    when: Optional[datetime] = None,
) -> PayDaySettings:
    """Store the outcome of a completed pay event and return the new record.

    A missing record is created with the default (monthly) frequency; an
    existing one keeps its frequency and expected amount.
    """
    existing = store.read()
    moment = when or datetime.now()
    if existing is None:
        updated = PayDaySettings(
            user_id=user_id,
            last_pay_amount=amount,
            last_pay_date=moment,
            default_account_id=account_id,
            pay_frequency=DEFAULT_PAY_FREQUENCY,
        )
    else:
        updated = PayDaySettings(
            user_id=existing.user_id or user_id,
            last_pay_amount=amount,
            last_pay_date=moment,
            expected_pay_amount=existing.expected_pay_amount,
            pay_frequency=existing.pay_frequency,
            default_account_id=account_id if account_id is not None else existing.default_account_id,
        )
    store.write(updated)
    return updated
