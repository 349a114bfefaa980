"""
OAuth provider exchanges.
"""

from .apple import AppleProviderExchange
from .base import HttpProviderExchange
from .facebook import FacebookProviderExchange
from .google import GoogleProviderExchange
from .registry import OAUTH_PROVIDERS, PASSWORD_PROVIDER, ProviderRegistry

__all__ = [
    "AppleProviderExchange",
    "HttpProviderExchange",
    "FacebookProviderExchange",
    "GoogleProviderExchange",
    "OAUTH_PROVIDERS",
    "PASSWORD_PROVIDER",
    "ProviderRegistry",
]
