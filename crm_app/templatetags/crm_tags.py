"""
Custom template tags for the CRM templates.
Display-only: nothing here changes stored values.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from django import template
from django.conf import settings

register = template.Library()


@register.filter
def currency(value):
    """
    Format a number as pt-BR currency.
    Usage: {{ 1234.5|currency }} -> "R$ 1.234,50"
    """
    try:
        amount = Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError, TypeError):
        return value
    if not amount.is_finite():
        return value
    sign = '-' if amount < 0 else ''
    # Swap separators: 1,234.50 -> 1.234,50
    formatted = '{:,.2f}'.format(abs(amount)).replace(',', '_').replace('.', ',').replace('_', '.')
    symbol = getattr(settings, 'CRM_CURRENCY_SYMBOL', 'R$')
    return f'{sign}{symbol} {formatted}'


@register.filter
def br_date(value):
    """
    Format a date as dd/mm/yyyy. Empty -> "-".
    Accepts date/datetime objects or ISO strings.
    """
    if not value:
        return '-'
    if isinstance(value, (date, datetime)):
        return value.strftime('%d/%m/%Y')
    try:
        return date.fromisoformat(str(value)[:10]).strftime('%d/%m/%Y')
    except ValueError:
        return value


@register.filter
def initial(value):
    """First letter of a name, upper-cased, for avatar bubbles."""
    s = (value or '').strip()
    return s[:1].upper()


@register.filter
def percent(value, digits=1):
    """
    Format a percentage with a fixed number of decimals.
    Usage: {{ stats.conversion_rate|percent }} -> "12.5%"
    """
    try:
        return f'{float(value or 0):.{int(digits)}f}%'
    except (ValueError, TypeError):
        return value
