"""
Client Intake Service
=====================
Validation and persistence for the "New Client" form.

CONTRACT:
- Validate ALL fields before any write; any error blocks submission
  without contacting the datastore
- Errors are a field-keyed map: {field_name: message}
- One client row, then one best-effort client_interactions row (type "note")
- No transaction spans the two writes: if the interaction insert fails,
  the client stays and the failure is only logged
"""

import logging
import os
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import psycopg2
from psycopg2 import errors as pg_errors

from models.enums import (
    AccountHealth,
    CompanySize,
    InteractionOutcome,
    InteractionType,
    RelationshipStatus,
)

logger = logging.getLogger(__name__)

CNPJ_MAX_LENGTH = 18

TEXT_FIELDS = (
    'company_name',
    'company_cnpj',
    'industry',
    'website',
    'address_street',
    'address_city',
    'address_state',
    'address_zipcode',
    'address_country',
    'notes',
)

MONEY_FIELDS = ('total_contract_value', 'monthly_recurring_revenue')

DATE_FIELDS = ('contract_start_date', 'contract_end_date')


def default_country() -> str:
    return os.environ.get('CRM_DEFAULT_COUNTRY', 'Brasil')


class IntakeError(Exception):
    """Raised when the form does not validate. Carries the field error map."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__(f"{len(errors)} field error(s): {', '.join(sorted(errors))}")


def empty_form() -> Dict[str, Any]:
    """Initial values for a fresh form."""
    return {
        'company_name': '',
        'company_cnpj': '',
        'company_size': '',
        'industry': '',
        'website': '',
        'address_street': '',
        'address_city': '',
        'address_state': '',
        'address_zipcode': '',
        'address_country': default_country(),
        'relationship_status': RelationshipStatus.PROSPECT.value,
        'account_health': AccountHealth.HEALTHY.value,
        'total_contract_value': 0,
        'monthly_recurring_revenue': 0,
        'contract_start_date': '',
        'contract_end_date': '',
        'account_manager_id': '',
        'notes': '',
    }


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return str(value).strip() if value is not None else ''


def _parse_money(raw: Any) -> Optional[Decimal]:
    """Blank → 0. Unparseable → None."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return Decimal('0')
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def _parse_date(raw: Any) -> Optional[date]:
    """Blank → None. Raises ValueError on a malformed date."""
    if raw is None or raw == '':
        return None
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw).strip())


def _is_valid_url(raw: str) -> bool:
    parsed = urlparse(raw)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def validate_client_form(data: Dict[str, Any]) -> Dict[str, str]:
    """
    Validate submitted intake fields.

    Returns:
        Field-keyed error map. Empty dict means the form is valid.
    """
    errors = {}

    if not _text(data, 'company_name'):
        errors['company_name'] = 'Company name is required'

    website = _text(data, 'website')
    if website and not _is_valid_url(website):
        errors['website'] = 'Invalid website URL'

    if len(_text(data, 'company_cnpj')) > CNPJ_MAX_LENGTH:
        errors['company_cnpj'] = f'CNPJ must be at most {CNPJ_MAX_LENGTH} characters'

    size = _text(data, 'company_size')
    if size and size not in CompanySize.choices():
        errors['company_size'] = f'Invalid company size: {size}'

    status = _text(data, 'relationship_status')
    if status and status not in RelationshipStatus.choices():
        errors['relationship_status'] = f'Invalid relationship status: {status}'

    health = _text(data, 'account_health')
    if health and health not in AccountHealth.choices():
        errors['account_health'] = f'Invalid account health: {health}'

    messages = {
        'total_contract_value': 'Contract value',
        'monthly_recurring_revenue': 'MRR',
    }
    for key in MONEY_FIELDS:
        value = _parse_money(data.get(key))
        if value is None:
            errors[key] = f'{messages[key]} must be a number'
        elif value < 0:
            errors[key] = f'{messages[key]} cannot be negative'

    dates = {}
    for key in DATE_FIELDS:
        try:
            dates[key] = _parse_date(data.get(key))
        except ValueError:
            errors[key] = 'Invalid date'
            dates[key] = None

    start, end = dates['contract_start_date'], dates['contract_end_date']
    if start and end and start >= end:
        errors['contract_end_date'] = 'End date must be after the start date'

    return errors


def build_client_record(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shape validated form data into a clients row.
    Trims strings, blanks become NULL, money defaults to 0.
    """
    record = {}
    for key in TEXT_FIELDS:
        record[key] = _text(data, key) or None

    record['company_name'] = _text(data, 'company_name')
    record['address_country'] = record['address_country'] or default_country()
    record['company_size'] = _text(data, 'company_size') or None
    record['relationship_status'] = _text(data, 'relationship_status') or RelationshipStatus.PROSPECT.value
    record['account_health'] = _text(data, 'account_health') or AccountHealth.HEALTHY.value

    for key in MONEY_FIELDS:
        record[key] = _parse_money(data.get(key)) or Decimal('0')

    for key in DATE_FIELDS:
        parsed = _parse_date(data.get(key))
        record[key] = parsed.isoformat() if parsed else None

    record['account_manager_id'] = _text(data, 'account_manager_id') or None
    record['is_active'] = True
    return record


def create_client(data: Dict[str, Any]) -> Any:
    """
    Validate, insert the client, then log a "note" interaction.

    Raises:
        IntakeError: If validation fails (nothing is written)
        psycopg2.Error / RuntimeError: If the client insert fails
    Returns: the new client id
    """
    from db import insert_client, insert_client_interaction

    errors = validate_client_form(data)
    if errors:
        raise IntakeError(errors)

    record = build_client_record(data)
    client_id = insert_client(record)
    logger.info(f"Client created: {client_id} ({record['company_name']})")

    if client_id:
        try:
            insert_client_interaction(
                client_id=client_id,
                interaction_type=InteractionType.NOTE.value,
                title='Client registered',
                description=f"Client {record['company_name']} registered in the system",
                outcome=InteractionOutcome.POSITIVE.value,
                created_by=record['account_manager_id'],
            )
        except Exception as e:
            logger.error(f"Error creating interaction for client {client_id}: {e}")

    return client_id


def describe_create_error(exc: Exception) -> str:
    """User-facing message for a failed client insert."""
    if isinstance(exc, pg_errors.UniqueViolation):
        return 'A client with this information already exists.'
    if isinstance(exc, pg_errors.ForeignKeyViolation):
        return 'The selected account manager is invalid.'
    if isinstance(exc, pg_errors.CheckViolation):
        return 'Some of the values entered are invalid.'
    if isinstance(exc, psycopg2.Error):
        message = str(exc)
        if 'duplicate key' in message:
            return 'A client with this information already exists.'
        if 'foreign key' in message:
            return 'The selected account manager is invalid.'
        if 'check constraint' in message:
            return 'Some of the values entered are invalid.'
    return 'Error creating client. Please try again.'
