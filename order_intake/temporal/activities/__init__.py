from .intake import store_file, parse_workbook, apply_corrections
from .committee import run_committee
from .resolution import resolve_customer, resolve_items, apply_selections
from .ledger import create_draft_order, queue_draft_order, abandon_draft_order
from .case import update_case, notify_user

__all__ = [
    "store_file",
    "parse_workbook",
    "apply_corrections",
    "run_committee",
    "resolve_customer",
    "resolve_items",
    "apply_selections",
    "create_draft_order",
    "queue_draft_order",
    "abandon_draft_order",
    "update_case",
    "notify_user",
]
