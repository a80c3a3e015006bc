"""
lifevault/activity/logger.py
Append-only activity logging. Every contact / vault / emergency mutation
writes one row to activity_logs.

A failed log write never breaks the mutation that triggered it: errors are
logged and swallowed here.
"""

import logging
from typing import Any, Dict, Optional

from lifevault.backend.base import BackendAdapter
from lifevault.errors import LifeVaultError

logger = logging.getLogger(__name__)

ACTIVITY_TABLE = 'activity_logs'


def describe_action(action: str, entity_label: str, name: str) -> str:
    """'added', 'contact', 'Alice' → 'Added contact Alice'."""
    return f"{action[:1].upper()}{action[1:]} {entity_label} {name}".strip()


class ActivityLogger:

    def __init__(self, backend: BackendAdapter):
        self.backend = backend

    def log(
        self,
        user_id:            Optional[str],
        action_type:        str,
        action_description: str,
        category:           str,
        entity_id:          Optional[str]            = None,
        entity_type:        Optional[str]            = None,
        metadata:           Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Insert one activity row. Returns the stored row, or None on failure / no user."""
        if not user_id:
            return None
        try:
            return self.backend.insert(ACTIVITY_TABLE, {
                'user_id':            user_id,
                'action_type':        action_type,
                'action_description': action_description,
                'category':           category,
                'entity_id':          entity_id,
                'entity_type':        entity_type,
                'metadata':           metadata or {},
            })
        except LifeVaultError as e:
            logger.error(f"Error logging activity '{action_type}': {e}")
            return None

    def log_contact(self, user_id: Optional[str], action: str, contact_name: str,
                    contact_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return self.log(
            user_id,
            action_type        = action,
            action_description = describe_action(action, 'contact', contact_name),
            category           = 'contact',
            entity_id          = contact_id,
            entity_type        = 'contact',
            metadata           = {'contact_name': contact_name},
        )
