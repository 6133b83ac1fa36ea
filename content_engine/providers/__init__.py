"""
External provider clients.

- TextGenerationClient: synchronous text generation (Claude)
- ImageGenerationClient: asynchronous image predictions (Replicate)
- BunnyStorage: permanent storage for generated assets (BunnyCDN)
"""

from content_engine.providers.text import TextGenerationClient, TextGeneration
from content_engine.providers.image import ImageGenerationClient, ImageTask
from content_engine.providers.storage import BunnyStorage, StoredFile

__all__ = [
    "TextGenerationClient",
    "TextGeneration",
    "ImageGenerationClient",
    "ImageTask",
    "BunnyStorage",
    "StoredFile",
]
