import os
import tempfile
from typing import Any, Dict

import anyio
import boto3
import instructor
from docling.document_converter import DocumentConverter
from openai import AsyncOpenAI

from app.config import settings
from app.utils.files import extension_for

_ai_clients: Dict[str, Any] = {}


class AsyncBedrockWrapper:
    """Wrapper to make synchronous Bedrock/Instructor calls awaitable."""
    def __init__(self, client):
        self.client = client

    @property
    def chat(self):
        return self

    @property
    def completions(self):
        return self

    async def create(self, **kwargs) -> Any:
        return await anyio.to_thread.run_sync(
            lambda: self.client.chat.completions.create(**kwargs)
        )


def get_ai_client(provider: str = None):
    """
    Modular AI Client Factory.
    Returns an async-compatible instructor client, one per provider.
    """
    provider = provider or settings.AI_PROVIDER
    if provider in _ai_clients:
        return _ai_clients[provider]

    if provider == "bedrock":
        sync_client = boto3.client(
            service_name="bedrock-runtime",
            region_name=settings.AWS_REGION
        )
        client = AsyncBedrockWrapper(instructor.from_bedrock(sync_client))
    elif provider == "openai":
        # instructor.from_openai(AsyncOpenAI) is already async
        client = instructor.from_openai(AsyncOpenAI(api_key=settings.OPENAI_API_KEY))
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")

    _ai_clients[provider] = client
    return client


def _convert_to_markdown(content: bytes, suffix: str) -> str:
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        tmp.write(content)
        temp_path = tmp.name
    try:
        result = DocumentConverter().convert(temp_path)
        return result.document.export_to_markdown()
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)


async def document_to_markdown(content: bytes, mime_type: str) -> str:
    """Docling conversion of one page (PDF or image) to markdown, off the event loop."""
    return await anyio.to_thread.run_sync(
        _convert_to_markdown, content, extension_for(mime_type)
    )
