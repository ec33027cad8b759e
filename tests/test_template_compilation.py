"""
Template guard: every CRM template must compile and render.

A template syntax error only shows up when the page is requested, as a
500. Compiling here catches it in CI instead.
"""
import pytest
from django.template.loader import get_template
from django.test import RequestFactory

from services.client_intake import empty_form
from services.pipeline_stats import compute_pipeline_stats, group_by_stage

TEMPLATES = [
    'crm_app/base.html',
    'crm_app/pipeline.html',
    'crm_app/new_client.html',
]


@pytest.mark.parametrize('name', TEMPLATES)
def test_template_compiles(name):
    assert get_template(name) is not None


def test_empty_board_renders_every_column():
    request = RequestFactory().get('/pipeline/')
    html = get_template('crm_app/pipeline.html').render({
        'stats': compute_pipeline_stats([]),
        'columns': group_by_stage([]),
        'total_count': 0,
    }, request)
    assert html.count('data-stage="') >= 6
    assert 'data-move-url="/pipeline/move/"' in html


def test_intake_form_renders_field_errors():
    request = RequestFactory().get('/clients/new/')
    html = get_template('crm_app/new_client.html').render({
        'form': empty_form(),
        'errors': {'company_name': 'Company name is required'},
        'team_members': [],
        'company_sizes': [],
        'relationship_statuses': [],
        'account_healths': [],
    }, request)
    assert 'Company name is required' in html
