"""
Generation strategies, one per job type.

Text strategies run to completion inside the worker and return a
SyncResult. The image strategy only submits work to the provider and
returns an AsyncHandle; completion arrives later through the
CompletionReceiver.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from content_engine.database.jobs import JobType
from content_engine.errors import UnknownJobType
from content_engine.providers.image import ImageGenerationClient
from content_engine.providers.text import TextGenerationClient


@dataclass
class SyncResult:
    """Finished output of a synchronous strategy."""
    result: Dict[str, Any]


@dataclass
class AsyncHandle:
    """Provider task submitted by an asynchronous strategy."""
    task_id: str
    provider: str
    metadata: Dict[str, Any] = field(default_factory=dict)


StrategyOutcome = Union[SyncResult, AsyncHandle]


def job_parameters(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten a payload into one parameter dict.

    Callers may nest options under "parameters" or send them at the top
    level; top-level keys win.
    """
    nested = payload.get("parameters")
    params = dict(nested) if isinstance(nested, dict) else {}
    params.update({k: v for k, v in payload.items() if k != "parameters"})
    return params


def build_generation_prompt(params: Dict[str, Any]) -> str:
    """System prompt for content generation."""
    prompt = f"You are a professional content creator for {params.get('platform') or 'social media'}."

    if params.get("tone"):
        prompt += f" Write in a {params['tone']} tone."
    if params.get("length"):
        prompt += f" Keep it {params['length']}."
    if params.get("style"):
        prompt += f" Use a {params['style']} style."
    if params.get("target_audience"):
        prompt += f" Target audience: {params['target_audience']}."

    prompt += "\n\nCreate engaging, high-quality content that drives engagement and conversions."
    return prompt


def build_optimization_prompt(params: Dict[str, Any]) -> str:
    """System prompt for content optimization."""
    goals = params.get("optimization_goals") or "improve engagement and readability"
    if isinstance(goals, (list, tuple)):
        goals = ", ".join(str(goal) for goal in goals)
    return (
        "You are a content optimization expert. Optimize the following content "
        f"based on these goals: {goals}."
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class GenerationStrategy:
    """Base class: execute(job) returns a SyncResult or an AsyncHandle."""

    job_type: JobType
    is_async = False

    async def execute(self, job: Dict[str, Any]) -> StrategyOutcome:
        raise NotImplementedError


class ContentGenerationStrategy(GenerationStrategy):
    job_type = JobType.CONTENT_GENERATION

    def __init__(self, text_client: TextGenerationClient):
        self.text_client = text_client

    async def execute(self, job: Dict[str, Any]) -> SyncResult:
        params = job_parameters(job.get("payload") or {})

        generation = await self.text_client.generate(
            build_generation_prompt(params),
            params["prompt"],
        )

        return SyncResult({
            "content": generation.content,
            "metadata": {
                "model": generation.model,
                "tokens": generation.tokens,
                "generated_at": _now(),
            },
        })


class ContentOptimizationStrategy(GenerationStrategy):
    job_type = JobType.CONTENT_OPTIMIZATION

    def __init__(self, text_client: TextGenerationClient):
        self.text_client = text_client

    async def execute(self, job: Dict[str, Any]) -> SyncResult:
        params = job_parameters(job.get("payload") or {})
        original = params.get("original_content", "")

        generation = await self.text_client.generate(
            build_optimization_prompt(params),
            f"Original content: {original}\n\nOptimization request: {params['prompt']}",
        )

        return SyncResult({
            "optimized_content": generation.content,
            "original_content": original,
            "metadata": {
                "model": generation.model,
                "tokens": generation.tokens,
                "optimized_at": _now(),
            },
        })


class ImageGenerationStrategy(GenerationStrategy):
    job_type = JobType.IMAGE_GENERATION
    is_async = True

    def __init__(self, image_client: ImageGenerationClient):
        self.image_client = image_client

    async def execute(self, job: Dict[str, Any]) -> AsyncHandle:
        params = job_parameters(job.get("payload") or {})

        task = await self.image_client.submit(params["prompt"], params)

        return AsyncHandle(
            task_id=task.task_id,
            provider=self.image_client.provider,
            metadata={
                "model": self.image_client.model,
                "provider_status": task.status,
                "submitted_at": _now(),
            },
        )


def build_strategies(
    text_client: Optional[TextGenerationClient] = None,
    image_client: Optional[ImageGenerationClient] = None
) -> Dict[JobType, GenerationStrategy]:
    """Registry with one strategy per JobType."""
    text_client = text_client or TextGenerationClient()
    image_client = image_client or ImageGenerationClient()

    strategies: Dict[JobType, GenerationStrategy] = {
        JobType.CONTENT_GENERATION: ContentGenerationStrategy(text_client),
        JobType.CONTENT_OPTIMIZATION: ContentOptimizationStrategy(text_client),
        JobType.IMAGE_GENERATION: ImageGenerationStrategy(image_client),
    }

    missing = [t.value for t in JobType if t not in strategies]
    if missing:
        raise RuntimeError(f"No strategy registered for job types: {', '.join(missing)}")

    return strategies


def resolve_strategy(
    strategies: Dict[JobType, GenerationStrategy],
    job_type: Any
) -> GenerationStrategy:
    """Pick the strategy for a job's type, or raise UnknownJobType."""
    try:
        key = JobType(job_type)
    except ValueError:
        raise UnknownJobType(str(job_type))

    strategy = strategies.get(key)
    if strategy is None:
        raise UnknownJobType(key.value)
    return strategy
