"""
Pipeline statistics: KPI calculations and per-stage aggregation.
Used by the pipeline board to compute header metrics and column totals.

Derived data only. Recomputed from the current opportunity list on every
call, never cached or persisted.

Money stays Decimal end to end (psycopg2 returns NUMERIC as Decimal), so
per-stage value totals add up to the header total exactly.
"""

from decimal import Decimal, InvalidOperation
from typing import Dict, Any, List

import pandas as pd

from services.sales_stage import (
    SALES_STAGES,
    WON_STAGE,
    normalize_stage,
)

ZERO = Decimal('0')


def to_decimal(value) -> Decimal:
    """Money value -> Decimal. Missing, NaN or unparseable -> 0."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            # str() first: Decimal(0.1) would carry the binary float error
            amount = Decimal(str(value).strip() or '0')
        except InvalidOperation:
            return ZERO
    return amount if amount.is_finite() else ZERO


def _to_frame(opportunities: List[Dict[str, Any]]) -> pd.DataFrame:
    """
    Normalise raw rows into a frame with stage / value / probability.

    Missing values count as 0; unknown stages fold into the first column.
    estimated_value is an object column of Decimals.
    """
    df = pd.DataFrame(opportunities, columns=['stage', 'estimated_value', 'probability_percentage'])
    df['stage'] = df['stage'].map(normalize_stage)
    df['estimated_value'] = df['estimated_value'].map(to_decimal).astype(object)
    df['probability_percentage'] = (
        pd.to_numeric(df['probability_percentage'], errors='coerce').fillna(0).astype(float)
    )
    return df


def compute_pipeline_stats(opportunities: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Aggregate opportunity rows into pipeline statistics.

    Per stage (in board order): count, total estimated value and average
    probability (0 for an empty stage). Totals: count, value, average deal
    size, and conversion rate = won / total * 100 (0 when empty).
    """
    if not opportunities:
        return _empty_stats()

    df = _to_frame(opportunities)

    total = len(df)
    won = int((df['stage'] == WON_STAGE).sum())

    by_stage = []
    for key, label, _ in SALES_STAGES:
        stage_df = df[df['stage'] == key]
        count = len(stage_df)
        by_stage.append({
            'stage': key,
            'label': label,
            'count': count,
            'total_value': sum(stage_df['estimated_value'], ZERO),
            'avg_probability': float(stage_df['probability_percentage'].mean()) if count else 0.0,
        })

    # Every row is in exactly one stage, so this is also the sum of all rows
    total_value = sum((s['total_value'] for s in by_stage), ZERO)

    return {
        'total_opportunities': total,
        'total_value': total_value,
        'avg_deal_size': total_value / total if total > 0 else ZERO,
        'conversion_rate': (won / total * 100) if total > 0 else 0.0,
        'by_stage': by_stage,
    }


def _empty_stats() -> Dict[str, Any]:
    """Return empty stats structure (all six stages present, all zero)."""
    return {
        'total_opportunities': 0,
        'total_value': ZERO,
        'avg_deal_size': ZERO,
        'conversion_rate': 0.0,
        'by_stage': [
            {'stage': key, 'label': label, 'count': 0, 'total_value': ZERO, 'avg_probability': 0.0}
            for key, label, _ in SALES_STAGES
        ],
    }


def group_by_stage(opportunities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Build the board columns.

    Every opportunity lands in exactly one column; list order inside a
    column follows the input order (newest first from the query).
    """
    columns = {
        key: {'stage': key, 'label': label, 'color': color, 'opportunities': [], 'count': 0, 'total_value': ZERO}
        for key, label, color in SALES_STAGES
    }
    for opp in opportunities:
        column = columns[normalize_stage(opp.get('stage'))]
        column['opportunities'].append(opp)
        column['count'] += 1
        column['total_value'] += to_decimal(opp.get('estimated_value'))
    return [columns[key] for key, _, _ in SALES_STAGES]


def fetch_pipeline_stats() -> Dict[str, Any]:
    """Read the active rows from the datastore and aggregate them."""
    from db import get_opportunity_stat_rows

    return compute_pipeline_stats(get_opportunity_stat_rows())
