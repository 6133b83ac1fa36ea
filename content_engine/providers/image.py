"""
Asynchronous image generation provider (Replicate).

submit() only creates a prediction and returns its id; Replicate calls
our completion webhook when the prediction finishes. fetch() reads the
current state of a prediction and is used by the stale-job sweep when a
webhook never arrives.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import replicate

from content_engine.config import config
from content_engine.errors import ProviderError


@dataclass
class ImageTask:
    """Provider-side view of an image generation task."""
    task_id: str
    status: str
    result_urls: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _output_urls(output: Any) -> List[str]:
    # Some models return a single file, others a list of files
    if output is None:
        return []
    if isinstance(output, (list, tuple)):
        return [str(item) for item in output if item]
    return [str(output)]


def _to_task(prediction: Any) -> ImageTask:
    return ImageTask(
        task_id=prediction.id,
        status=prediction.status,
        result_urls=_output_urls(getattr(prediction, "output", None)),
        error=str(prediction.error) if getattr(prediction, "error", None) else None,
    )


class ImageGenerationClient:
    """
    Replicate client for asynchronous image predictions.

    Args:
        model: Replicate model reference (defaults to config.IMAGE_MODEL)
        webhook_url: Completion webhook (defaults to config.image_webhook_url)
        client: Pre-built replicate.Client (tests inject a mock here)
    """

    provider = "replicate"

    def __init__(
        self,
        model: Optional[str] = None,
        webhook_url: Optional[str] = None,
        client: Optional[Any] = None
    ):
        self.model = model or config.IMAGE_MODEL
        self.webhook_url = webhook_url or config.image_webhook_url
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not config.REPLICATE_API_TOKEN:
                raise ProviderError("REPLICATE_API_TOKEN is not configured", provider=self.provider)
            self._client = replicate.Client(api_token=config.REPLICATE_API_TOKEN)
        return self._client

    def build_input(self, prompt: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """Map job parameters onto the model's input schema."""
        style = parameters.get("style")
        quality = parameters.get("quality")

        full_prompt = prompt
        if style:
            full_prompt = f"{full_prompt}, {style} style"
        if quality:
            full_prompt = f"{full_prompt}, {quality} quality"

        input_params = {
            "prompt": full_prompt,
            "aspect_ratio": parameters.get("aspect_ratio") or "1:1",
            "output_format": parameters.get("output_format") or "png",
        }
        if parameters.get("negative_prompt"):
            input_params["negative_prompt"] = parameters["negative_prompt"]
        return input_params

    async def submit(self, prompt: str, parameters: Dict[str, Any]) -> ImageTask:
        """Create a prediction and return its task handle without waiting."""
        client = self.client
        input_params = self.build_input(prompt, parameters)

        try:
            prediction = await client.predictions.async_create(
                model=self.model,
                input=input_params,
                webhook=self.webhook_url,
                webhook_events_filter=["completed"],
            )
        except Exception as e:
            message = str(e)
            if "401" in message or "unauthorized" in message.lower():
                message = "Replicate authentication failed. Check REPLICATE_API_TOKEN."
            elif "429" in message:
                message = "Replicate rate limit exceeded"
            raise ProviderError(f"Image generation submit failed: {message}", provider=self.provider) from e

        if not getattr(prediction, "id", None):
            raise ProviderError("Replicate did not return a prediction id", provider=self.provider)

        return _to_task(prediction)

    async def fetch(self, task_id: str) -> ImageTask:
        """Read the current state of a prediction."""
        try:
            prediction = await self.client.predictions.async_get(task_id)
        except Exception as e:
            raise ProviderError(f"Failed to fetch task {task_id}: {e}", provider=self.provider) from e
        return _to_task(prediction)
