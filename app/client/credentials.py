"""Credential providers injected into every workflow client"""

from typing import Optional, Protocol


class CredentialProvider(Protocol):
    async def get_token(self) -> Optional[str]:
        """Bearer token for the next request, or None when signed out"""
        ...


class StaticCredentials:
    """Fixed token; useful for scripts and tests"""

    def __init__(self, token: Optional[str]):
        self._token = token

    async def get_token(self) -> Optional[str]:
        return self._token
