"""
CRM Django Views
================
Pipeline board and client intake.

Views call db.py and services/* functions ONLY. No SQL here.
Remote failures never 500: they are logged and surfaced to the user
(messages on pages, JSON error bodies for the drag-and-drop endpoint).
"""

import json
import logging

from django.contrib import messages
from django.http import JsonResponse
from django.shortcuts import render, redirect
from django.views.decorators.http import require_http_methods

logger = logging.getLogger(__name__)


# =============================================================================
# PIPELINE BOARD
# =============================================================================

def pipeline_view(request):
    """
    Pipeline board - KPI header plus one column per stage.

    Two independent reads, like the board has always done:
    - get_active_opportunities() for the cards
    - fetch_pipeline_stats() for the header and column aggregates
    """
    from db import get_active_opportunities
    from services.pipeline_stats import fetch_pipeline_stats, group_by_stage, compute_pipeline_stats

    try:
        opportunities = get_active_opportunities()
    except Exception as e:
        logger.error(f"Error fetching opportunities: {e}")
        messages.error(request, 'Could not load opportunities. Please try again.')
        opportunities = []

    try:
        stats = fetch_pipeline_stats()
    except Exception as e:
        logger.error(f"Error fetching pipeline stats: {e}")
        stats = compute_pipeline_stats([])

    context = {
        'stats': stats,
        'columns': group_by_stage(opportunities),
        'total_count': len(opportunities),
    }

    return render(request, 'crm_app/pipeline.html', context)


def _read_payload(request) -> dict:
    """Accept either a JSON body (board script) or a regular form post."""
    if request.content_type == 'application/json':
        try:
            payload = json.loads(request.body or b'{}')
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}
    return request.POST


@require_http_methods(["POST"])
def move_opportunity_view(request):
    """
    Drop handler for the board.

    CONTRACT:
    - Body: opportunity_id, stage (canonical key)
    - Same-stage drop: 200, moved=false, no write
    - Invalid stage: 400, checked before any datastore call
    - Stage update failure: 502 with {ok: false, error}; the script alerts it
    - Refresh failure after a committed move: 200, moved=true, stats=null
    """
    from db import get_active_opportunities
    from services.sales_stage import is_valid_stage
    from services.stage_transition import move_opportunity

    payload = _read_payload(request)
    opportunity_id = str(payload.get('opportunity_id') or '').strip()
    stage = str(payload.get('stage') or '').strip()

    if not is_valid_stage(stage):
        return JsonResponse({'ok': False, 'error': f'Invalid stage: {stage}'}, status=400)

    try:
        # The board's current list: lookup happens against what the user sees
        opportunities = get_active_opportunities()
        result = move_opportunity(opportunity_id, stage, opportunities)
    except ValueError as e:
        return JsonResponse({'ok': False, 'error': str(e)}, status=400)
    except Exception as e:
        logger.error(f"Error moving opportunity {opportunity_id}: {e}")
        return JsonResponse(
            {'ok': False, 'error': f'Error moving opportunity: {e or "Unknown error"}'},
            status=502,
        )

    return JsonResponse({
        'ok': True,
        'moved': result.moved,
        'reason': result.reason,
        'stats': result.stats,
    })


@require_http_methods(["POST"])
def delete_opportunity_view(request):
    """
    Soft delete from a card.

    Requires confirm=yes (set by the confirmation dialog). PRG pattern.
    """
    from services.stage_transition import soft_delete_opportunity

    opportunity_id = request.POST.get('opportunity_id', '').strip()
    title = request.POST.get('title', '').strip()

    if not opportunity_id:
        messages.error(request, 'Invalid opportunity')
        return redirect('pipeline')

    if request.POST.get('confirm') != 'yes':
        messages.warning(request, 'Deletion not confirmed. Nothing was changed.')
        return redirect('pipeline')

    try:
        soft_delete_opportunity(opportunity_id, title)
        messages.success(request, f'Opportunity "{title}" deleted')
    except Exception as e:
        logger.error(f"Error deleting opportunity {opportunity_id}: {e}")
        messages.error(request, 'Error deleting opportunity. Please try again.')

    return redirect('pipeline')


# =============================================================================
# CLIENT INTAKE
# =============================================================================

def _intake_context(form, errors):
    from db import get_active_team_members
    from models.enums import AccountHealth, CompanySize, RelationshipStatus

    try:
        team_members = get_active_team_members()
    except Exception as e:
        # Dropdown just stays empty; the form still works without a manager
        logger.error(f"Error loading team members: {e}")
        team_members = []

    return {
        'form': form,
        'errors': errors,
        'team_members': team_members,
        'company_sizes': list(CompanySize.display_labels().items()),
        'relationship_statuses': list(RelationshipStatus.display_labels().items()),
        'account_healths': list(AccountHealth.display_labels().items()),
    }


@require_http_methods(["GET", "POST"])
def new_client_view(request):
    """
    New Client form.

    CONTRACT:
    - GET: fresh form with defaults
    - POST invalid: re-render with field-keyed errors, datastore untouched
    - POST valid: one client + one "note" interaction, then redirect
    - Remote failure: friendly message, form keeps the user's input
    """
    from services.client_intake import (
        IntakeError,
        create_client,
        describe_create_error,
        empty_form,
        validate_client_form,
    )

    if request.method == 'GET':
        return render(request, 'crm_app/new_client.html', _intake_context(empty_form(), {}))

    form = {key: request.POST.get(key, '') for key in empty_form()}

    errors = validate_client_form(form)
    if errors:
        return render(request, 'crm_app/new_client.html', _intake_context(form, errors))

    try:
        create_client(form)
    except IntakeError as e:
        return render(request, 'crm_app/new_client.html', _intake_context(form, e.errors))
    except Exception as e:
        logger.error(f"Error creating client: {e}")
        messages.error(request, describe_create_error(e))
        return render(request, 'crm_app/new_client.html', _intake_context(form, {}))

    messages.success(request, 'Client created successfully!')
    return redirect('pipeline')
