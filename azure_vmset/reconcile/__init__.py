"""Backend pool membership rules and the concurrent fan-out used to apply them."""

from .backend_pool import MembershipResult
from .fanout import collect_errors, run_concurrently

__all__ = ["MembershipResult", "collect_errors", "run_concurrently"]
