"""
Client intake tests.

Tests verify:
1. Empty company name blocks submission with exactly one field error
2. End date on or before start date blocks submission
3. Negative money and malformed URLs are rejected
4. A valid submission writes one client and one "note" interaction
5. Interaction failure leaves the client in place
"""
from decimal import Decimal

import psycopg2
import pytest
from psycopg2 import errors as pg_errors

from services.client_intake import (
    IntakeError,
    build_client_record,
    create_client,
    describe_create_error,
    empty_form,
    validate_client_form,
)


def _form(**overrides):
    form = empty_form()
    form['company_name'] = 'TechCorp Ltda'
    form.update(overrides)
    return form


class TestValidation:

    def test_defaults_are_valid(self):
        assert validate_client_form(_form()) == {}

    def test_empty_company_name_is_exactly_one_error(self):
        errors = validate_client_form(_form(company_name='   '))
        assert list(errors.keys()) == ['company_name']

    def test_end_date_equal_to_start_is_rejected(self):
        errors = validate_client_form(_form(contract_start_date='2026-01-01', contract_end_date='2026-01-01'))
        assert 'contract_end_date' in errors

    def test_end_date_before_start_is_rejected(self):
        errors = validate_client_form(_form(contract_start_date='2026-06-01', contract_end_date='2026-01-01'))
        assert 'contract_end_date' in errors

    def test_end_date_after_start_is_accepted(self):
        errors = validate_client_form(_form(contract_start_date='2026-01-01', contract_end_date='2026-12-31'))
        assert errors == {}

    def test_single_date_is_accepted(self):
        assert validate_client_form(_form(contract_start_date='2026-01-01')) == {}

    def test_malformed_date_is_rejected(self):
        errors = validate_client_form(_form(contract_start_date='31/12/2026'))
        assert errors == {'contract_start_date': 'Invalid date'}

    def test_negative_money_is_rejected(self):
        errors = validate_client_form(_form(total_contract_value='-1', monthly_recurring_revenue=-5))
        assert set(errors) == {'total_contract_value', 'monthly_recurring_revenue'}

    def test_non_numeric_money_is_rejected(self):
        errors = validate_client_form(_form(total_contract_value='lots'))
        assert 'total_contract_value' in errors

    def test_invalid_website_is_rejected(self):
        assert 'website' in validate_client_form(_form(website='not a url'))
        assert validate_client_form(_form(website='https://techcorp.com.br')) == {}

    def test_unknown_vocabulary_is_rejected(self):
        errors = validate_client_form(_form(company_size='huge', account_health='meh'))
        assert set(errors) == {'company_size', 'account_health'}

    def test_long_cnpj_is_rejected(self):
        assert 'company_cnpj' in validate_client_form(_form(company_cnpj='1' * 19))
        assert validate_client_form(_form(company_cnpj='12.345.678/0001-90')) == {}


class TestBuildRecord:

    def test_blanks_become_null_and_strings_are_trimmed(self):
        record = build_client_record(_form(company_name='  Acme  ', industry='  ', notes=''))
        assert record['company_name'] == 'Acme'
        assert record['industry'] is None
        assert record['notes'] is None
        assert record['account_manager_id'] is None
        assert record['is_active'] is True

    def test_defaults_applied(self):
        record = build_client_record(_form(address_country='', total_contract_value=''))
        assert record['address_country'] == 'Brasil'
        assert record['relationship_status'] == 'prospect'
        assert record['account_health'] == 'healthy'
        assert record['total_contract_value'] == Decimal('0')

    def test_dates_are_iso_strings(self):
        record = build_client_record(_form(contract_start_date='2026-01-01'))
        assert record['contract_start_date'] == '2026-01-01'
        assert record['contract_end_date'] is None


class TestCreateClient:

    def test_creates_one_client_and_one_note_interaction(self, store):
        manager = store.add('team_members', full_name='Bia', email='bia@example.com', is_active=True)

        client_id = create_client(_form(account_manager_id=manager['id'], total_contract_value='1200.50'))

        clients = store.writes_to('clients')
        interactions = store.writes_to('client_interactions')
        assert len(clients) == 1
        assert len(interactions) == 1
        assert clients[0][2]['company_name'] == 'TechCorp Ltda'
        assert clients[0][2]['total_contract_value'] == Decimal('1200.50')

        interaction = interactions[0][2]
        assert interaction['client_id'] == client_id
        assert interaction['interaction_type'] == 'note'
        assert interaction['outcome'] == 'positive'
        assert interaction['created_by'] == manager['id']
        assert interaction['interaction_date']

    def test_invalid_form_writes_nothing(self, store):
        with pytest.raises(IntakeError) as exc_info:
            create_client(_form(company_name=''))
        assert list(exc_info.value.errors) == ['company_name']
        assert store.writes == []

    def test_invalid_dates_write_nothing(self, store):
        with pytest.raises(IntakeError):
            create_client(_form(contract_start_date='2026-05-01', contract_end_date='2026-04-01'))
        assert store.writes == []

    def test_interaction_failure_keeps_client(self, store, monkeypatch):
        import db

        def boom(**kwargs):
            raise psycopg2.OperationalError('interactions unavailable')

        monkeypatch.setattr(db, 'insert_client_interaction', boom)

        client_id = create_client(_form())

        assert client_id
        assert len(store.tables['clients']) == 1
        assert store.tables['client_interactions'] == []

    def test_client_insert_failure_propagates(self, store, monkeypatch):
        import db

        def boom(values):
            raise psycopg2.OperationalError('down')

        monkeypatch.setattr(db, 'insert_client', boom)

        with pytest.raises(psycopg2.OperationalError):
            create_client(_form())
        assert store.tables['client_interactions'] == []


class TestDescribeCreateError:

    def test_integrity_errors_get_friendly_messages(self):
        assert 'already exists' in describe_create_error(pg_errors.UniqueViolation())
        assert 'account manager' in describe_create_error(pg_errors.ForeignKeyViolation())
        assert 'invalid' in describe_create_error(pg_errors.CheckViolation())

    def test_message_text_fallback(self):
        exc = psycopg2.DatabaseError('duplicate key value violates unique constraint')
        assert 'already exists' in describe_create_error(exc)

    def test_generic_error(self):
        assert describe_create_error(RuntimeError('DB pool exhausted')) == 'Error creating client. Please try again.'
