# airdrop_backend/features/ledger/__init__.py

from .completion import CompletionEvaluator, normalize_action_types
from .service import DEFAULT_INTERACTION_TTL, InteractionLedger, audit_scope

__all__ = [
    "CompletionEvaluator",
    "DEFAULT_INTERACTION_TTL",
    "InteractionLedger",
    "audit_scope",
    "normalize_action_types",
]
