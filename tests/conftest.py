"""
Pytest configuration for Django tests.

The hosted datastore is never contacted: the `store` fixture swaps the
db.py table operations for an in-memory fake.
"""
import os
import sys
import uuid

import pytest

# Add project root to path so crm_django / db can be imported
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)


def pytest_configure():
    """Configure Django settings for pytest."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'crm_django.settings')

    import django
    django.setup()


class FakeStore:
    """
    In-memory stand-in for the remote tables.

    Records every write in `writes` so tests can assert what was (and
    was not) sent to the datastore.
    """

    def __init__(self):
        from models.enums import TABLES
        self.tables = {t: [] for t in TABLES}
        self.writes = []

    # -- seeding -------------------------------------------------------------

    def add(self, table, **values):
        row = dict(values)
        row.setdefault('id', str(uuid.uuid4()))
        self.tables[table].append(row)
        return row

    def add_opportunity(self, **values):
        row = {
            'opportunity_title': 'Deal',
            'company_name': 'Acme',
            'contact_name': 'Ana',
            'estimated_value': 0,
            'probability_percentage': 0,
            'stage': 'qualified_lead',
            'expected_close_date': None,
            'assigned_to': None,
            'is_active': True,
            'created_at': f'2026-01-{len(self.tables["sales_opportunities"]) + 1:02d}T00:00:00',
        }
        row.update(values)
        return self.add('sales_opportunities', **row)

    # -- db.py replacements --------------------------------------------------

    def select_rows(self, table, columns=None, filters=None, order_by=None, descending=False):
        rows = [
            r for r in self.tables[table]
            if all(r.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows = sorted(rows, key=lambda r: r.get(order_by) or '', reverse=descending)
        if columns:
            return [{c: r.get(c) for c in columns} for r in rows]
        return [dict(r) for r in rows]

    def insert_row(self, table, values, returning='id'):
        row = dict(values)
        row.setdefault('id', str(uuid.uuid4()))
        self.tables[table].append(row)
        self.writes.append(('insert', table, dict(values)))
        return row[returning]

    def update_rows(self, table, values, filters):
        count = 0
        for row in self.tables[table]:
            if all(row.get(k) == v for k, v in filters.items()):
                row.update(values)
                count += 1
        self.writes.append(('update', table, dict(values), dict(filters)))
        return count

    def get_active_opportunities(self):
        members = {m['id']: m for m in self.tables['team_members']}
        rows = [dict(r) for r in self.tables['sales_opportunities'] if r.get('is_active')]
        rows.sort(key=lambda r: r.get('created_at') or '', reverse=True)
        for r in rows:
            member = members.get(r.get('assigned_to'))
            r['team_member_name'] = member['full_name'] if member else None
            r['team_member_email'] = member['email'] if member else None
        return rows

    # -- helpers -------------------------------------------------------------

    def writes_to(self, table):
        return [w for w in self.writes if w[1] == table]


@pytest.fixture
def store(monkeypatch):
    """Patch db.py so every table operation hits an in-memory FakeStore."""
    import db

    fake = FakeStore()
    monkeypatch.setattr(db, 'select_rows', fake.select_rows)
    monkeypatch.setattr(db, 'insert_row', fake.insert_row)
    monkeypatch.setattr(db, 'update_rows', fake.update_rows)
    monkeypatch.setattr(db, 'get_active_opportunities', fake.get_active_opportunities)
    db.clear_cache()
    yield fake
    db.clear_cache()
