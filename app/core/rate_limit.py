"""Shared slowapi limiter (endpoints decorate with it, main.py installs it)"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)

# Extraction and analysis each cost an LLM call
AI_LIMIT = f"{settings.AI_RATE_LIMIT_PER_MINUTE}/minute"
