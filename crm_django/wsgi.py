"""
WSGI config for the Sales Pipeline CRM.
Exposes the WSGI callable as ``application``.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'crm_django.settings')

application = get_wsgi_application()
