"""Local git repository management."""

from .manager import BranchStatus, GitCommandError, GitRepositoryManager, has_staged_changes
from .reconciler import (
    LocalRepositoryReconciler,
    RepositoryStateError,
    ensure_local_repository_state,
)

__all__ = [
    "BranchStatus",
    "GitCommandError",
    "GitRepositoryManager",
    "has_staged_changes",
    "LocalRepositoryReconciler",
    "RepositoryStateError",
    "ensure_local_repository_state",
]
