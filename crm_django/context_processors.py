"""
Context Processors
==================
Values every CRM page needs: deployed build and navigation state.
"""
import os

from django.conf import settings


def app_context(request):
    """
    BUILD_SHA: first 8 chars of RAILWAY_GIT_COMMIT_SHA, 'dev' locally.
    nav_section: which top-bar link is active.
    """
    sha = os.environ.get('RAILWAY_GIT_COMMIT_SHA', '')
    path = request.path or '/'
    return {
        'BUILD_SHA': sha[:8] if sha else 'dev',
        'CURRENCY_SYMBOL': getattr(settings, 'CRM_CURRENCY_SYMBOL', 'R$'),
        'nav_section': 'clients' if path.startswith('/clients/') else 'pipeline',
    }
