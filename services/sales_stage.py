"""
Sales Stage Constants
=====================
Single source of truth for pipeline stage classification.
Imported by the pipeline board, the stats aggregation and stage transitions.

Order matters: columns render left to right in this order.
"""

from typing import Optional

# Canonical values, labels and column colour (CSS modifier)
SALES_STAGES = [
    ("qualified_lead", "Qualified Lead", "blue"),
    ("proposal_sent", "Proposal Sent", "yellow"),
    ("negotiation", "Negotiation", "orange"),
    ("proposal_accepted", "Proposal Accepted", "purple"),
    ("contract_signed", "Contract Signed", "green"),
    ("lost", "Lost", "red"),
]

# Key → Label mapping for display
SALES_STAGE_LABELS = {k: label for k, label, _ in SALES_STAGES}

SALES_STAGE_COLORS = {k: color for k, _, color in SALES_STAGES}

# Just the keys for validation
SALES_STAGE_KEYS = [k for k, _, _ in SALES_STAGES]

# Terminal "won" stage used for the conversion rate
WON_STAGE = "contract_signed"

DEFAULT_STAGE = SALES_STAGE_KEYS[0]

# Labels written by the earlier front end; rows created there still carry them
LEGACY_STAGE_LABELS = {
    "Lead Qualificado": "qualified_lead",
    "Proposta Enviada": "proposal_sent",
    "Negociação": "negotiation",
    "Proposta Aceita": "proposal_accepted",
    "Contrato Assinado": "contract_signed",
    "Perdido": "lost",
}

# Lower-cased key / label / legacy label -> key
_LOOKUP = {
    **{k: k for k in SALES_STAGE_KEYS},
    **{label.lower(): k for k, label, _ in SALES_STAGES},
    **{label.lower(): k for label, k in LEGACY_STAGE_LABELS.items()},
}


def normalize_stage(raw: Optional[str]) -> str:
    """
    Map a stored stage to a canonical key.

    Accepts the key itself, its display label or the pt-BR label stored by
    the earlier front end (case-insensitive).
    Missing or unrecognised values fall back to the first stage so every
    record lands in exactly one column.
    """
    if not raw:
        return DEFAULT_STAGE
    return _LOOKUP.get(str(raw).strip().lower(), DEFAULT_STAGE)


def is_valid_stage(stage: Optional[str]) -> bool:
    """Strict check used for incoming transitions (no fallback)."""
    return stage in SALES_STAGE_LABELS
