"""
Stage Transition Service
========================
Moves an opportunity between pipeline columns (drag and drop on the board).

CONTRACT:
- Looks the card up in the caller's in-memory list, not in the datastore
- Same-stage drops are a no-op: no remote write at all
- Stage update first, then a best-effort audit entry in sales_activities
- Audit failures are logged, never surfaced, never undo the stage update
- After a move the record list and the statistics are both refetched;
  refetch failures are logged and never turn a committed move into an error
- Concurrency: last-write-wins (no optimistic update, no conflict detection)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.enums import ActivityType
from services.sales_stage import SALES_STAGE_LABELS, is_valid_stage, normalize_stage

logger = logging.getLogger(__name__)


@dataclass
class MoveResult:
    moved: bool
    reason: str
    opportunities: List[Dict[str, Any]] = field(default_factory=list)
    stats: Optional[Dict[str, Any]] = None


def _find(opportunities: List[Dict[str, Any]], opportunity_id: str) -> Optional[Dict[str, Any]]:
    for opp in opportunities:
        if str(opp.get('id')) == str(opportunity_id):
            return opp
    return None


def move_opportunity(
    opportunity_id: str,
    new_stage: str,
    opportunities: List[Dict[str, Any]],
) -> MoveResult:
    """
    Move one opportunity to new_stage.

    Args:
        opportunity_id: Identifier carried by the dragged card
        new_stage: Canonical key of the column it was dropped on
        opportunities: The list currently rendered on the board

    Raises:
        ValueError: If new_stage is not a canonical stage key
        psycopg2.Error / RuntimeError: If the stage update itself fails

    A refetch failure leaves stats as None (and the caller's list in place).
    """
    from db import get_active_opportunities, insert_sales_activity, update_opportunity_stage
    from services.pipeline_stats import fetch_pipeline_stats

    if not opportunity_id:
        logger.info("Drop ignored: no opportunity id")
        return MoveResult(moved=False, reason='missing_id', opportunities=opportunities)

    if not is_valid_stage(new_stage):
        raise ValueError(f"Invalid stage: {new_stage}")

    opportunity = _find(opportunities, opportunity_id)
    if opportunity is None:
        logger.info(f"Drop ignored: opportunity {opportunity_id} not on the board")
        return MoveResult(moved=False, reason='not_found', opportunities=opportunities)

    old_stage = normalize_stage(opportunity.get('stage'))
    if old_stage == new_stage:
        return MoveResult(moved=False, reason='same_stage', opportunities=opportunities)

    old_label = SALES_STAGE_LABELS[old_stage]
    new_label = SALES_STAGE_LABELS[new_stage]
    logger.info(f'Moving "{opportunity.get("opportunity_title")}" from "{old_label}" to "{new_label}"')

    update_opportunity_stage(opportunity_id, new_stage)

    try:
        insert_sales_activity(
            opportunity_id=opportunity_id,
            activity_type=ActivityType.STAGE_CHANGE.value,
            title=f"Moved to {new_label}",
            description=f'Opportunity moved from "{old_label}" to "{new_label}" via drag & drop',
        )
    except Exception as e:
        logger.warning(f"Activity log error for {opportunity_id} (not critical): {e}")

    # Full refetch, sequentially: list first, then stats.
    # The stage update is committed at this point; refresh failures are only logged.
    refreshed = opportunities
    try:
        refreshed = get_active_opportunities()
    except Exception as e:
        logger.error(f"Error refetching opportunities after move of {opportunity_id}: {e}")

    stats = None
    try:
        stats = fetch_pipeline_stats()
    except Exception as e:
        logger.error(f"Error refetching pipeline stats after move of {opportunity_id}: {e}")

    return MoveResult(moved=True, reason='moved', opportunities=refreshed, stats=stats)


def soft_delete_opportunity(opportunity_id: str, title: str = '') -> None:
    """
    Mark an opportunity inactive and note it in the activity log.

    The note is best-effort; a failed deactivation propagates.
    """
    from db import deactivate_opportunity, insert_sales_activity

    if not opportunity_id:
        raise ValueError("opportunity_id is required")

    deactivate_opportunity(opportunity_id)

    try:
        insert_sales_activity(
            opportunity_id=opportunity_id,
            activity_type=ActivityType.NOTE.value,
            title="Opportunity deleted",
            description=f'Opportunity "{title}" was marked as deleted',
        )
    except Exception as e:
        logger.warning(f"Activity log error for {opportunity_id} (not critical): {e}")
