"""
Migration lock utilities.

Provides lease-based mutual exclusion over a branch's migration state,
safe across process restarts: an abandoned lease expires and is reclaimed
by the next caller.

Example:
    >>> from branchmigrator.locks import LeaseLockManager
    >>>
    >>> locks = LeaseLockManager(state_store)
    >>> async with locks.hold(branch_id):
    ...     await migrate_branch()
"""

from branchmigrator.locks.lease import LeaseInfo, LeaseLockManager

__all__ = ["LeaseInfo", "LeaseLockManager"]
