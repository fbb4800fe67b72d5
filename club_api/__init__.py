"""
Club administration API collaborators
"""
from .client import ClubApiClient, ClubApiError, Endpoints
from .config import api_config, billing_config

__all__ = ['ClubApiClient', 'ClubApiError', 'Endpoints', 'api_config', 'billing_config']
