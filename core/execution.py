"""Chain execution: builder API, async executor, and single prompt runner.

A chain is an ordered list of execution nodes. Sequential steps see every
output produced before them; members of a parallel group all see the same
snapshot taken when the group starts and merge their outputs in declaration
order once every member has finished.

Updates:
  v0.4.1 - 2026-10-19 - Validate PromptRunner responses against the prompt output schema.
  v0.4.0 - 2026-09-21 - Add PromptRunner with optional input schema validation.
  v0.3.0 - 2026-09-18 - Load declarative chains from JSON or YAML files.
  v0.2.0 - 2026-09-12 - Run parallel groups against a shared snapshot with asyncio.gather.
  v0.1.0 - 2026-09-04 - Introduce ChainBuilder and ChainExecutor.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import yaml

from models.prompt_chain_model import (
    ChainDefinition,
    Condition,
    ExecutionNode,
    FallbackSpec,
    ParallelGroup,
    PromptSource,
    RawSource,
    StepMode,
    StepNode,
    StepSpec,
    StoredSource,
    chain_definition_from_payload,
    coerce_source,
)

from .exceptions import (
    ConfigurationError,
    PromptStoreError,
    SchemaValidationError,
    SerializationError,
    StorageIOError,
)
from .providers import ProviderHandle, ProviderRegistry, invoke_provider
from .templating import SchemaValidationResult, SchemaValidator, render_template

if TYPE_CHECKING:  # pragma: no cover - typing helpers
    from models.prompt_model import PromptRecord

logger = logging.getLogger("prompt_store.execution")


class PromptLookup(Protocol):
    """Repository surface the executor needs."""

    def find(self, id_or_title: str) -> PromptRecord: ...


class RunState(Enum):
    """Lifecycle of a single chain run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class _ChainContext:
    """Variable map shared by every step of one run."""

    def __init__(self, initial: Mapping[str, str]) -> None:
        self._values: dict[str, str] = {str(key): str(value) for key, value in initial.items()}
        self._lock = asyncio.Lock()

    async def snapshot(self) -> dict[str, str]:
        async with self._lock:
            return dict(self._values)

    async def update(self, values: Mapping[str, str]) -> None:
        async with self._lock:
            self._values.update(values)


def _resolve_handle(registry: ProviderRegistry, provider_id: str | None) -> ProviderHandle:
    if not provider_id:
        raise ConfigurationError("No provider configured for step")
    handle = registry.get(provider_id)
    if handle is None:
        raise ConfigurationError(f"Provider '{provider_id}' not found")
    return handle


def _messages_for(text: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": text}]


class ChainExecutor:
    """Run execution nodes against a repository and provider registry."""

    def __init__(self, repository: PromptLookup, registry: ProviderRegistry) -> None:
        self._repository = repository
        self._registry = registry
        self.state = RunState.PENDING
        self.error: PromptStoreError | None = None

    async def _resolve_template(self, source: PromptSource) -> str:
        if isinstance(source, RawSource):
            return source.text
        record = await asyncio.to_thread(self._repository.find, source.id_or_title)
        return record.content

    async def _invoke(
        self,
        source: PromptSource,
        provider_id: str | None,
        mode: StepMode,
        snapshot: Mapping[str, str],
        output_key: str,
    ) -> str:
        template = await self._resolve_template(source)
        rendered = render_template(template, snapshot)
        handle = _resolve_handle(self._registry, provider_id)
        logger.debug(
            "Dispatching step",
            extra={
                "output_key": output_key,
                "provider_id": provider_id,
                "mode": mode.value,
                "source": source.describe(),
            },
        )
        return await invoke_provider(handle, _messages_for(rendered))

    async def _run_step(self, step: StepSpec, snapshot: Mapping[str, str]) -> str | None:
        """Return the step's text, or ``None`` when its condition does not hold."""
        if not step.should_run(snapshot):
            logger.debug("Skipping step", extra={"output_key": step.output_key})
            return None
        try:
            return await self._invoke(
                step.source, step.provider_id, step.mode, snapshot, step.output_key
            )
        except PromptStoreError as exc:
            if step.fallback is None:
                raise
            logger.warning(
                "Step failed; running fallback",
                extra={
                    "output_key": step.output_key,
                    "error": str(exc),
                    "error_type": exc.__class__.__name__,
                },
            )
            return await self._invoke(
                step.fallback.source,
                step.fallback.provider_id or step.provider_id,
                step.mode,
                snapshot,
                step.output_key,
            )

    async def _run_group(
        self,
        group: ParallelGroup,
        snapshot: Mapping[str, str],
    ) -> list[tuple[str, str]]:
        results = await asyncio.gather(
            *(self._run_step(step, snapshot) for step in group.steps),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return [
            (step.output_key, result)
            for step, result in zip(group.steps, results, strict=True)
            if isinstance(result, str)
        ]

    async def run(
        self,
        nodes: Sequence[ExecutionNode],
        variables: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Execute *nodes* in order and return the outputs they produced.

        Seed *variables* are visible to templates and conditions but are not
        part of the returned mapping. The first fatal error aborts the run and
        is re-raised unchanged.
        """
        context = _ChainContext(variables or {})
        outputs: dict[str, str] = {}
        self.state = RunState.RUNNING
        self.error = None
        logger.info("Chain run started", extra={"nodes": len(nodes)})
        try:
            for index, node in enumerate(nodes):
                snapshot = await context.snapshot()
                if isinstance(node, StepNode):
                    result = await self._run_step(node.step, snapshot)
                    produced = [] if result is None else [(node.step.output_key, result)]
                else:
                    produced = await self._run_group(node, snapshot)
                if produced:
                    await context.update(dict(produced))
                    outputs.update(produced)
                logger.debug("Node finished", extra={"node_index": index, "outputs": len(produced)})
        except Exception as exc:
            self.state = RunState.FAILED
            if isinstance(exc, PromptStoreError):
                self.error = exc
            logger.warning(
                "Chain run failed",
                extra={"error": str(exc), "error_type": exc.__class__.__name__},
            )
            raise
        self.state = RunState.COMPLETED
        logger.info("Chain run completed", extra={"outputs": sorted(outputs)})
        return outputs


class StepHandle:
    """Fluent editor for a step that was just added to a builder or group."""

    def __init__(self, step: StepSpec) -> None:
        self._step = step

    @property
    def step(self) -> StepSpec:
        return self._step

    def set_provider(self, provider_id: str) -> StepHandle:
        self._step.provider_id = provider_id
        return self

    def set_fallback(
        self,
        source: PromptSource | str,
        provider_id: str | None = None,
    ) -> StepHandle:
        """Run *source* when the primary source fails; the step's provider is reused by default."""
        self._step.fallback = FallbackSpec(source=coerce_source(source), provider_id=provider_id)
        return self

    def set_mode(self, mode: StepMode | str) -> StepHandle:
        self._step.mode = mode if isinstance(mode, StepMode) else StepMode.from_string(mode)
        return self


class ParallelGroupHandle:
    """Collect steps that run concurrently against one snapshot."""

    def __init__(self, group: ParallelGroup) -> None:
        self._group = group
        self._default_provider: str | None = None

    @property
    def group(self) -> ParallelGroup:
        return self._group

    def add_step(
        self,
        output_key: str,
        source: PromptSource | str,
        provider_id: str | None = None,
    ) -> StepHandle:
        step = StepSpec(
            output_key=output_key,
            source=coerce_source(source),
            provider_id=provider_id or self._default_provider,
        )
        self._group.steps.append(step)
        return StepHandle(step)

    def add_conditional_step(
        self,
        output_key: str,
        source: PromptSource | str,
        condition: Condition,
        provider_id: str | None = None,
    ) -> StepHandle:
        handle = self.add_step(output_key, source, provider_id)
        handle.step.condition = condition
        return handle

    def set_provider(self, provider_id: str) -> ParallelGroupHandle:
        """Use *provider_id* for every member that has no provider of its own."""
        self._default_provider = provider_id
        for step in self._group.steps:
            if step.provider_id is None:
                step.provider_id = provider_id
        return self


class ChainBuilder:
    """Assemble an execution graph and run it.

    Example:
        >>> builder = ChainBuilder(repository, registry)
        >>> builder.set_variables({"text": "I love it"})
        >>> builder.add_step("sentiment", "Sentiment Classifier").set_provider("openai")
        >>> outputs = builder.run_sync()
    """

    def __init__(self, repository: PromptLookup, registry: ProviderRegistry) -> None:
        self._repository = repository
        self._registry = registry
        self._variables: dict[str, str] = {}
        self._nodes: list[ExecutionNode] = []

    @property
    def nodes(self) -> list[ExecutionNode]:
        return list(self._nodes)

    @property
    def variables(self) -> dict[str, str]:
        return dict(self._variables)

    def set_variables(self, variables: Mapping[str, Any]) -> ChainBuilder:
        """Merge *variables* into the seed context."""
        self._variables.update({str(key): str(value) for key, value in variables.items()})
        return self

    def add_step(
        self,
        output_key: str,
        source: PromptSource | str,
        provider_id: str | None = None,
    ) -> StepHandle:
        step = StepSpec(
            output_key=output_key,
            source=coerce_source(source),
            provider_id=provider_id,
        )
        self._nodes.append(StepNode(step=step))
        return StepHandle(step)

    def add_conditional_step(
        self,
        output_key: str,
        source: PromptSource | str,
        condition: Condition,
        provider_id: str | None = None,
    ) -> StepHandle:
        handle = self.add_step(output_key, source, provider_id)
        handle.step.condition = condition
        return handle

    def add_parallel_group(self) -> ParallelGroupHandle:
        group = ParallelGroup()
        self._nodes.append(group)
        return ParallelGroupHandle(group)

    def build(self) -> ChainDefinition:
        return ChainDefinition(variables=dict(self._variables), nodes=list(self._nodes))

    async def run(self) -> dict[str, str]:
        """Execute the assembled graph and return the produced outputs."""
        executor = ChainExecutor(self._repository, self._registry)
        return await executor.run(self._nodes, self._variables)

    def run_sync(self) -> dict[str, str]:
        """Run the chain on a fresh event loop; not for use inside a running loop."""
        return asyncio.run(self.run())

    @classmethod
    def from_definition(
        cls,
        definition: ChainDefinition,
        repository: PromptLookup,
        registry: ProviderRegistry,
    ) -> ChainBuilder:
        builder = cls(repository, registry)
        builder.set_variables(definition.variables)
        builder._nodes.extend(definition.nodes)
        return builder

    @classmethod
    def for_stored_chain(
        cls,
        repository: Any,
        registry: ProviderRegistry,
        chain_id: str,
        provider_id: str,
    ) -> ChainBuilder:
        """Build a sequential graph from a stored chain; outputs are keyed ``step_<n>``."""
        stored = repository.get_chain(chain_id)
        builder = cls(repository, registry)
        for number, step in enumerate(stored.steps, start=1):
            builder.add_step(f"step_{number}", StoredSource(step.id), provider_id)
        return builder


def load_chain_definition(path: str | Path) -> ChainDefinition:
    """Read a chain definition from a JSON or YAML file.

    Raises:
        StorageIOError: If the file cannot be read.
        SerializationError: If the file is not valid JSON/YAML or the
            definition is malformed.
    """
    definition_path = Path(path).expanduser()
    try:
        text = definition_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StorageIOError(f"Unable to read chain file {definition_path}: {exc}") from exc
    try:
        if definition_path.suffix.lower() == ".json":
            payload = json.loads(text)
        else:
            payload = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise SerializationError(f"Invalid chain file {definition_path}: {exc}") from exc
    try:
        return chain_definition_from_payload(payload or {})
    except ValueError as exc:
        raise SerializationError(f"Invalid chain definition in {definition_path}: {exc}") from exc


class PromptRunner:
    """Render one stored prompt and optionally send it to a provider."""

    def __init__(
        self,
        repository: PromptLookup,
        registry: ProviderRegistry,
        *,
        validator: SchemaValidator | None = None,
    ) -> None:
        self._repository = repository
        self._registry = registry
        self._validator = validator or SchemaValidator()

    async def run(
        self,
        id_or_title: str,
        variables: Mapping[str, Any] | None = None,
        *,
        provider_id: str | None = None,
        validate: bool = False,
    ) -> str:
        """Return the provider response, or the rendered text when no provider is given.

        With *validate* set, the variables are checked against the prompt's
        input schema before rendering and the provider response against its
        output schema.

        Raises:
            SchemaValidationError: If *validate* is set and either check fails.
        """
        record = await asyncio.to_thread(self._repository.find, id_or_title)
        values = dict(variables or {})
        if validate:
            self._raise_if_invalid(
                "input", record.id, self._validator.validate_inputs(record.schema, values)
            )
        rendered = render_template(record.content, values)
        if provider_id is None:
            return rendered
        handle = _resolve_handle(self._registry, provider_id)
        logger.debug("Running prompt", extra={"prompt_id": record.id, "provider_id": provider_id})
        response = await invoke_provider(handle, _messages_for(rendered))
        if validate:
            self._raise_if_invalid(
                "output", record.id, self._validator.validate_output(record.schema, response)
            )
        return response

    @staticmethod
    def _raise_if_invalid(kind: str, prompt_id: str, result: SchemaValidationResult) -> None:
        if result.is_valid:
            return
        logger.warning(
            "Schema validation failed",
            extra={"prompt_id": prompt_id, "schema": kind, "errors": result.errors},
        )
        details = "; ".join(result.errors)
        raise SchemaValidationError(f"Invalid {kind} for '{prompt_id}': {details}")

    def run_sync(
        self,
        id_or_title: str,
        variables: Mapping[str, Any] | None = None,
        *,
        provider_id: str | None = None,
        validate: bool = False,
    ) -> str:
        return asyncio.run(
            self.run(id_or_title, variables, provider_id=provider_id, validate=validate)
        )


__all__ = [
    "ChainBuilder",
    "ChainExecutor",
    "ParallelGroupHandle",
    "PromptLookup",
    "PromptRunner",
    "RunState",
    "StepHandle",
    "load_chain_definition",
]
