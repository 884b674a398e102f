"""
Account Identity and Credentials Module
"""
from .account_info import AccountInfo, resolve_account_info
from .authenticator import Authenticator

__all__ = [
    "AccountInfo",
    "Authenticator",
    "resolve_account_info",
]
