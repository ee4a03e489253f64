"""Read-only selectors over sessions and the WIP ledger."""

from shopfloor_kernel.selectors.session_selector import SessionSelector
from shopfloor_kernel.selectors.wip_selector import WipSelector

__all__ = ["SessionSelector", "WipSelector"]
