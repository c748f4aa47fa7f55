# airdrop_backend/features/ledger/completion.py

# Completion evaluator: has the user done every required action at least once?
# Recency does not matter here, only that a successful record exists per type.

import logging
from typing import Iterable, List, Union

from ...db.schemas import USER_ACTION_RECORD
from ...models.interaction import ActionType
from ...shared.errors import InvalidInput, WRONG_PARAMS
from .service import InteractionLedger

logger = logging.getLogger(__name__)


def normalize_action_types(action_types: Iterable[Union[str, ActionType]]) -> List[ActionType]:
    """Maps names onto ActionType, rejecting unknown kinds before any store call."""
    normalized = []
    for action_type in action_types:
        try:
            normalized.append(ActionType(action_type))
        except ValueError as e:
            raise InvalidInput(WRONG_PARAMS, f"Unknown action type '{action_type}'") from e
    return normalized


class CompletionEvaluator:
    def __init__(self, ledger: InteractionLedger):
        self.ledger = ledger

    async def missing_actions(self, actor_id: str, required: Iterable[Union[str, ActionType]]) -> List[ActionType]:
        """Required action types the user has no successful record for, in the order given."""
        required_types = normalize_action_types(required)
        # StorageUnavailable propagates: an unreachable ledger must never read as "complete"
        request_body = {"required": [action_type.value for action_type in required_types]}
        async with self.ledger.audit_on_failure(actor_id, "check_completion", USER_ACTION_RECORD, request_body):
            done = set(await self.ledger.completed_action_types(actor_id))
        return [action_type for action_type in required_types if action_type.value not in done]

    async def is_complete(self, actor_id: str, required: Iterable[Union[str, ActionType]]) -> bool:
        missing = await self.missing_actions(actor_id, required)
        if missing:
            logger.debug("User %s still missing %s", actor_id, [m.value for m in missing])
        return not missing
