"""Step executors: turn a template id plus inputs into an ExecutionResult."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Protocol

from pydantic_ai import Agent

from .config import ExecutorConfig
from .contracts import ExecutionResult, PromptTemplate, TemplateNotFoundError
from .resolver import interpolate
from .utils import retry

logger = logging.getLogger(__name__)

PromptBackend = Callable[[str, str], Awaitable[str]]


class StepExecutor(Protocol):
    """Callable the session awaits to run the current step."""

    async def __call__(
        self, template_id: str, inputs: Mapping[str, Any]
    ) -> ExecutionResult: ...


class AgentBackend:
    """Prompt backend backed by one ``pydantic_ai.Agent`` per model.

    Template model ids such as ``anthropic/claude-sonnet-4`` carry no
    provider prefix and are routed through OpenRouter.
    """

    def __init__(
        self,
        agents: Optional[Dict[str, Agent]] = None,
        default_provider: str = "openrouter",
    ) -> None:
        self._agents: Dict[str, Agent] = dict(agents or {})
        self._default_provider = default_provider

    def agent_for(self, model: str) -> Agent:
        if model not in self._agents:
            name = model if ":" in model else f"{self._default_provider}:{model}"
            self._agents[model] = Agent(name)
        return self._agents[model]

    async def __call__(self, prompt: str, model: str) -> str:
        result = await self.agent_for(model).run(prompt)
        return str(result.output)


class TemplateStepExecutor:
    """Resolve a template's prompt and send it to a backend.

    Backend exceptions are retried with exponential backoff; once the
    attempts are exhausted the failure is reported as a ``failed`` result
    rather than raised.
    """

    def __init__(
        self,
        templates: Iterable[PromptTemplate],
        backend: PromptBackend,
        retry_attempts: int = 3,
        default_model: str = "",
        timeout: Optional[float] = None,
        backoff: Optional[retry.BackoffPolicy] = None,
    ) -> None:
        self._templates = {template.id: template for template in templates}
        self._backend = backend
        self._retry_attempts = max(1, retry_attempts)
        self._default_model = default_model
        self._timeout = timeout
        self._backoff = backoff

    @classmethod
    def from_config(
        cls,
        templates: Iterable[PromptTemplate],
        config: ExecutorConfig,
        backend: Optional[PromptBackend] = None,
    ) -> "TemplateStepExecutor":
        """Build an executor from settings, defaulting to an :class:`AgentBackend`."""
        return cls(
            templates,
            backend or AgentBackend(),
            retry_attempts=config.retry_attempts,
            default_model=config.default_model,
            timeout=config.timeout,
            backoff=config.backoff,
        )

    async def __call__(
        self, template_id: str, inputs: Mapping[str, Any]
    ) -> ExecutionResult:
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Unknown template id: {template_id}")

        model = template.model or self._default_model
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        interpolation = interpolate(template, inputs)
        if not interpolation.ok:
            message = "Variable interpolation failed: " + ", ".join(interpolation.errors)
            logger.error(message)
            return ExecutionResult(
                status="failed",
                error_message=message,
                resolved_prompt=interpolation.resolved_prompt,
                model=model,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
            )

        logger.info(f"Executing template '{template.name}' with model {model}")
        last_error: Optional[Exception] = None
        for attempt in range(1, self._retry_attempts + 1):
            try:
                output = await asyncio.wait_for(
                    self._backend(interpolation.resolved_prompt, model), self._timeout
                )
            except Exception as exc:
                last_error = exc
                logger.warning(
                    f"Attempt {attempt}/{self._retry_attempts} for template "
                    f"'{template.name}' failed: {exc}"
                )
                if attempt < self._retry_attempts:
                    await retry.schedule_retry(attempt, self._backoff)
                continue
            return ExecutionResult(
                status="completed",
                output_raw=output,
                resolved_prompt=interpolation.resolved_prompt,
                execution_time_ms=int((time.monotonic() - start) * 1000),
                model=model,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
            )

        return ExecutionResult(
            status="failed",
            error_message=str(last_error),
            resolved_prompt=interpolation.resolved_prompt,
            execution_time_ms=int((time.monotonic() - start) * 1000),
            model=model,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
