"""
Operator dashboard state and loaders
"""
from .store import DashboardState
from .loaders import ClubMembersLoader, UnpaidRegistrationsLoader

__all__ = ["DashboardState", "ClubMembersLoader", "UnpaidRegistrationsLoader"]
