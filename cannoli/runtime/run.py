"""
Run - executes a graph of work items.

The run:
1. Validates the graph (per-object checks, missing dependencies, cycles)
2. Executes every object with no dependencies
3. Reacts to status events: a completed object activates the dependents
   whose dependencies are now all complete; a rejected one rejects its
   pending dependents; an error stops the whole run
4. Throttles model calls through one limiter shared by the whole run
5. Emits exactly one Stoppage (user, error, or complete) with usage and cost

There is no scheduling loop. After ``start()`` seeds the roots, everything
happens inside status event handlers, which run synchronously on the event
loop, one event at a time.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import NoReturn

from cannoli.config import RunConfig
from cannoli.errors import CannoliError, LLMCallError, RunFatalError, UnknownStatusError
from cannoli.graph.objects import CannoliObject
from cannoli.graph.status import ObjectStatus, StatusEvent
from cannoli.graph.validator import CYCLE_MESSAGE, find_cycle, missing_dependencies
from cannoli.llm.mock import MockLLMProvider
from cannoli.llm.provider import ChatMessage, CompletionRequest, LLMProvider
from cannoli.observability import set_trace_context
from cannoli.runtime.canvas import Canvas, NodeColor
from cannoli.runtime.limiter import ConcurrencyLimiter
from cannoli.runtime.usage import UsageTracker
from cannoli.schemas.usage import Stoppage, StoppageReason, Usage
from cannoli.storage.notes import NoteStore

logger = logging.getLogger(__name__)

StoppageHandler = Callable[[Stoppage], None]


class Run:
    """
    Executes a graph of work items once per ``start()``.

    Example:
        run = Run(
            graph={obj.id: obj for obj in objects},
            llm=LiteLLMProvider(base_config=ModelConfig(provider="openai")),
            canvas=canvas,
            on_finish=lambda stoppage: print(stoppage.reason),
        )
        stoppage = await run.run()
    """

    def __init__(
        self,
        graph: Mapping[str, CannoliObject] | Iterable[CannoliObject],
        on_finish: StoppageHandler | None = None,
        llm: LLMProvider | None = None,
        canvas: Canvas | None = None,
        store: NoteStore | None = None,
        config: RunConfig | None = None,
        is_mock: bool | None = None,
        llm_limit: int | None = None,
    ):
        """
        Initialize the run.

        Args:
            graph: Objects keyed by id (or an iterable of objects); iteration
                order decides which roots start first
            on_finish: Called once with the run's Stoppage
            llm: Provider for model calls; without one, calls are mocked
            canvas: Optional sink for visual updates
            store: Optional note store for reference nodes
            config: Run settings; loaded from the config file when omitted
            is_mock: Overrides ``config.is_mock``
            llm_limit: Overrides ``config.llm_limit``
        """
        if isinstance(graph, Mapping):
            self.graph: dict[str, CannoliObject] = dict(graph)
        else:
            self.graph = {obj.id: obj for obj in graph}

        self.config = config or RunConfig()
        self.on_finish = on_finish
        self.llm = llm
        self.canvas = canvas
        self.store = store
        self.is_mock = self.config.is_mock if is_mock is None else is_mock
        self.limiter = ConcurrencyLimiter(
            self.config.llm_limit if llm_limit is None else llm_limit
        )
        self.usage_tracker = UsageTracker(self.config.model_info)
        self.run_id = uuid.uuid4().hex

        self.is_stopped = False
        self.stoppage: Stoppage | None = None

        self._mock_llm = MockLLMProvider()
        self._stopped = asyncio.Event()
        self._subscriptions: dict[str, str] = {}
        self._dependents: dict[str, list[str]] = {}
        self._activated: set[str] = set()
        self._finished: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

        self._status_handlers: dict[ObjectStatus, Callable[[CannoliObject, str | None], None]] = {
            ObjectStatus.PENDING: self._object_pending,
            ObjectStatus.EXECUTING: self._object_executing,
            ObjectStatus.COMPLETE: self._object_completed,
            ObjectStatus.REJECTED: self._object_rejected,
            ObjectStatus.ERROR: self._object_error,
            ObjectStatus.WARNING: self._object_warning,
        }

        for obj in self.graph.values():
            obj.set_run(self)

    # === LIFECYCLE ===

    async def start(self) -> None:
        """
        Validate the graph and execute its roots.

        Raises:
            RunFatalError: if validation fails; the error stoppage has
                already been emitted
        """
        self.is_stopped = False
        self.stoppage = None
        self._stopped.clear()
        self._activated.clear()
        self._finished.clear()

        set_trace_context(run_id=self.run_id, model=self.config.model)
        logger.info(
            f"Starting run {self.run_id} with {len(self.graph)} objects",
            extra={"event": "run_started"},
        )

        self.log_graph()
        self._setup_listeners()
        self.reset()
        self.validate()

        if self.canvas is not None:
            self.canvas.enqueue_remove_all_error_nodes()

        if not self.graph:
            self._finish(StoppageReason.COMPLETE)
            return

        for obj in list(self.graph.values()):
            if self.is_stopped:
                break
            if not obj.execution_dependencies():
                self._execute(obj)

    async def run(self) -> Stoppage:
        """Start the run and wait for its stoppage."""
        try:
            await self.start()
        except RunFatalError as e:
            logger.debug(f"Run {self.run_id} failed during start: {e.message}")
        await self._stopped.wait()
        if self.stoppage is None:
            raise CannoliError(f"Run {self.run_id} signalled a stop without a stoppage")
        return self.stoppage

    async def wait_for_stoppage(self, timeout: float | None = None) -> Stoppage | None:
        """Wait for the stoppage. Returns None on timeout."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=timeout)
        except TimeoutError:
            return None
        return self.stoppage

    async def drain(self) -> None:
        """Wait for every object task this run has spawned to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stop(self) -> None:
        """Stop at the user's request. In-flight executions are not cancelled."""
        if self.is_stopped:
            return
        self._finish(StoppageReason.USER)

    def error(self, message: str) -> NoReturn:
        """Stop the run with an error, then raise RunFatalError to unwind the caller."""
        if not self.is_stopped:
            self._finish(StoppageReason.ERROR, message)
        raise RunFatalError(message)

    def reset(self) -> None:
        self.is_stopped = False
        for obj in self.graph.values():
            obj.reset()

    def validate(self) -> None:
        """Validate every object, then the graph's dependencies and acyclicity."""
        for obj in self.graph.values():
            obj.validate()

        for obj_id, absent in missing_dependencies(self.graph).items():
            self._report_structural_error(
                f"Object {obj_id} depends on objects that are not in the graph: {', '.join(absent)}"
            )

        cycle = find_cycle(self.graph)
        if cycle is not None:
            logger.debug(f"Dependency cycle: {' -> '.join(cycle)}")
            self._report_structural_error(CYCLE_MESSAGE)

    def _report_structural_error(self, message: str) -> None:
        # Only vertices carry error annotations; fall back to the run itself
        for obj in self.graph.values():
            if obj.is_vertex:
                obj.error(message)
                break
        self.error(message)

    def _setup_listeners(self) -> None:
        for obj_id, sub_id in self._subscriptions.items():
            self.graph[obj_id].off_update(sub_id)
        self._subscriptions = {
            obj_id: obj.on_update(self._object_updated) for obj_id, obj in self.graph.items()
        }

        self._dependents = {obj_id: [] for obj_id in self.graph}
        for obj_id, obj in self.graph.items():
            for dep_id in obj.execution_dependencies():
                if dep_id in self._dependents:
                    self._dependents[dep_id].append(obj_id)

    def log_graph(self) -> None:
        for obj in self.graph.values():
            logger.debug(obj.log_details(), extra={"object_id": obj.id})

    def _finish(self, reason: StoppageReason, message: str | None = None) -> None:
        self.is_stopped = True
        self.stoppage = Stoppage(
            reason=reason,
            usage=self.usage_tracker.snapshot(),
            total_cost=self.usage_tracker.total_cost(),
            message=message,
        )
        log = logger.error if reason is StoppageReason.ERROR else logger.info
        log(
            f"Run {self.run_id} stopped: {reason.value}"
            + (f" ({message})" if message else "")
            + f", total cost ${self.stoppage.total_cost:.6f}",
            extra={"event": "run_stopped"},
        )
        self._stopped.set()
        if self.on_finish is not None:
            self.on_finish(self.stoppage)

    # === EXECUTION ===

    def _execute(self, obj: CannoliObject) -> None:
        self._activated.add(obj.id)
        task = asyncio.create_task(self._run_object(obj), name=f"cannoli:{obj.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_object(self, obj: CannoliObject) -> None:
        # Activated before the run stopped, but not started yet
        if self.is_stopped:
            logger.debug(f"Skipping {obj.id}: run already stopped")
            return

        set_trace_context(object_id=obj.id)
        started = time.perf_counter()
        try:
            try:
                await obj.execute()
            except RunFatalError:
                raise
            except Exception as e:
                logger.exception(f"Unhandled exception while executing {obj.id}")
                self._fail_object(obj, f"{type(e).__name__}: {e}")
        except RunFatalError as e:
            logger.debug(f"Execution of {obj.id} unwound by run error: {e.message}")
        finally:
            logger.debug(
                f"Execution of {obj.id} ended with status {obj.status.value}",
                extra={
                    "latency_ms": int((time.perf_counter() - started) * 1000),
                    "status": obj.status.value,
                },
            )

    def _fail_object(self, obj: CannoliObject, message: str) -> None:
        if obj.is_vertex and obj.status is not ObjectStatus.ERROR:
            obj.error(message)
        self.error(message)

    def _activate_if_ready(self, obj: CannoliObject) -> None:
        if obj.id in self._activated or obj.status is not ObjectStatus.PENDING:
            return
        if all(
            self.graph[d].status is ObjectStatus.COMPLETE for d in obj.execution_dependencies()
        ):
            self._execute(obj)

    def all_objects_finished(self) -> bool:
        """True when every object is COMPLETE or REJECTED."""
        return len(self._finished) == len(self.graph)

    def _check_finished(self) -> None:
        if self.all_objects_finished() and not self.is_stopped:
            self._finish(StoppageReason.COMPLETE)

    # === STATUS HANDLING ===

    def _object_updated(self, event: StatusEvent) -> None:
        try:
            status = ObjectStatus(event.status)
        except ValueError as e:
            raise UnknownStatusError(f"Unknown status: {event.status}") from e
        self._status_handlers[status](self.graph[event.object_id], event.message)

    def _object_pending(self, obj: CannoliObject, message: str | None) -> None:
        self._finished.discard(obj.id)
        if self.canvas is not None and obj.is_call_node:
            self.canvas.enqueue_change_node_color(obj.id, NodeColor.WAITING)

    def _object_executing(self, obj: CannoliObject, message: str | None) -> None:
        if not self.is_mock and self.canvas is not None and obj.is_call_node:
            self.canvas.enqueue_change_node_color(obj.id, NodeColor.EXECUTING)

    def _object_completed(self, obj: CannoliObject, message: str | None) -> None:
        self._finished.add(obj.id)

        if not self.is_mock and self.canvas is not None:
            if obj.is_call_node:
                self.canvas.enqueue_change_node_color(obj.id, NodeColor.DONE)
            elif obj.renders_text:
                self.canvas.enqueue_change_node_text(obj.id, getattr(obj, "text", ""))

        if not self.is_stopped:
            for dependent_id in self._dependents.get(obj.id, []):
                self._activate_if_ready(self.graph[dependent_id])

        self._check_finished()

    def _object_rejected(self, obj: CannoliObject, message: str | None) -> None:
        self._finished.add(obj.id)

        if not self.is_stopped:
            for dependent_id in self._dependents.get(obj.id, []):
                dependent = self.graph[dependent_id]
                if dependent.id not in self._activated and dependent.status is ObjectStatus.PENDING:
                    dependent.reject()

        self._check_finished()

    def _object_error(self, obj: CannoliObject, message: str | None) -> None:
        message = message or "Unknown error"
        if self.canvas is not None and obj.is_vertex:
            self.canvas.enqueue_add_error_node(obj.id, message)
        self.error(message)

    def _object_warning(self, obj: CannoliObject, message: str | None) -> None:
        message = message or "Unknown warning"
        logger.warning(f"{obj.id}: {message}", extra={"object_id": obj.id})
        if self.canvas is not None and obj.is_vertex:
            self.canvas.enqueue_add_warning_node(obj.id, message)

    # === MODEL CALLS ===

    async def call_llm(
        self, request: CompletionRequest, verbose: bool | None = None
    ) -> ChatMessage | Exception:
        """
        Make one model call through the run's limiter.

        Never raises: provider failures come back as the exception value.
        Without a provider (or in mock mode) the reply is synthesized and
        its prompt tokens are estimated from the message text.
        """
        verbose = self.config.verbose if verbose is None else verbose
        return await self.limiter.submit(lambda: self._call_llm_once(request, verbose))

    async def _call_llm_once(
        self, request: CompletionRequest, verbose: bool
    ) -> ChatMessage | Exception:
        mocking = self.is_mock or self.llm is None
        model_name = request.model or self.config.model
        provider = self._mock_llm if mocking else self.llm

        try:
            response = await provider.acomplete(request)
        except Exception as e:
            logger.warning(f"Model call failed: {e}", extra={"model": model_name})
            return e

        # The provider reports the model its merged config resolved to
        model_name = response.model or model_name
        if response.estimated or response.input_tokens or response.output_tokens:
            self.usage_tracker.record(
                model_name,
                response.input_tokens,
                response.output_tokens,
                estimated=response.estimated,
            )

        if verbose:
            logger.info(
                "Input Messages:\n%s\n\nResponse Message:\n%s",
                [m.to_dict() for m in request.messages],
                response.message.to_dict() if response.message else None,
                extra={"model": model_name},
            )

        if response.message is None:
            return LLMCallError("No message returned")
        return response.message

    # === USAGE ===

    @property
    def usage(self) -> dict[str, Usage]:
        """Live usage by model name."""
        return self.usage_tracker.usage

    @property
    def total_cost(self) -> float:
        return self.usage_tracker.total_cost()

    # === NOTES ===

    def _require_store(self) -> NoteStore:
        if self.store is None:
            raise CannoliError("This run has no note store")
        return self.store

    async def get_note(self, name: str) -> str | None:
        """A note's content with ``# {name}`` prepended, or None if missing."""
        store = self._require_store()
        path = await asyncio.to_thread(store.find_note, name)
        if path is None:
            return None
        content = await asyncio.to_thread(store.read, path)
        return f"# {name}\n{content}"

    async def edit_note(self, name: str, new_content: str) -> bool | None:
        """
        Replace a note's content. A leading ``# {name}`` header is dropped.

        Returns None if the note does not exist; does nothing in mock mode.
        """
        if self.is_mock:
            return True

        lines = new_content.split("\n")
        if lines[0].startswith("#") and lines[0][2:] == name:
            new_content = "\n".join(lines[1:]).strip()

        store = self._require_store()
        path = await asyncio.to_thread(store.find_note, name)
        if path is None:
            return None
        await asyncio.to_thread(store.write, path, new_content)
        return True

    async def create_note_at_existing_path(
        self, note_name: str, path: str, content: str = "", verbose: bool = False
    ) -> bool:
        """Create ``{path}/{note_name}.md`` unless it already exists."""
        store = self._require_store()
        full_path = f"{path}/{note_name}.md"
        if await asyncio.to_thread(store.exists, full_path):
            return False
        await asyncio.to_thread(store.create, full_path, content)
        if verbose:
            logger.info(f'Note "{note_name}" created at path "{full_path}"')
        return True

    async def create_note_at_new_path(
        self, note_name: str, path: str, content: str = "", verbose: bool = False
    ) -> bool:
        """Create ``{path}/{note_name}.md``; the store creates missing folders."""
        store = self._require_store()
        full_path = f"{path}/{note_name}.md"
        await asyncio.to_thread(store.create, full_path, content)
        if verbose:
            logger.info(f'Note "{note_name}" created at path "{full_path}"')
        return True

    async def create_folder(self, path: str, verbose: bool = False) -> bool:
        store = self._require_store()
        if await asyncio.to_thread(store.exists, path):
            return False
        await asyncio.to_thread(store.create_folder, path)
        if verbose:
            logger.info(f'Folder created at path "{path}"')
        return True

    async def move_note(
        self, note_name: str, old_path: str, new_path: str, verbose: bool = False
    ) -> bool:
        store = self._require_store()
        old_full_path = f"{old_path}/{note_name}.md"
        new_full_path = f"{new_path}/{note_name}.md"
        if not await asyncio.to_thread(store.exists, old_full_path):
            return False
        await asyncio.to_thread(store.rename, old_full_path, new_full_path)
        if verbose:
            logger.info(
                f'Note "{note_name}" moved from path "{old_full_path}" to path "{new_full_path}"'
            )
        return True
