"""Before-render hook execution.

The isomorphic chain (``.page`` files) runs first, unless the request
only asks for the serialized page context. An isomorphic hook controls
the server chain (``.page.server`` files) through two operations on the
context it receives::

    async def on_before_render(page_context):
        if page_context.url_parsed.search.get("cached"):
            page_context.skip_on_before_render_server_hooks()
            return {"page_context": {"movie": CACHE[...]}}
        result = await page_context.run_on_before_render_server_hooks()
        return {"page_context": {"title": result["page_context"]["movie"].title}}

Each operation may be called at most once and they exclude each other.
When the isomorphic hook calls neither, the server chain runs right
after it.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren.errors import HookFailure, UsageError
from wren.pages.context import PageContext

if TYPE_CHECKING:
    from wren.pages.context import PageContextBuilder
    from wren.pages.types import HookDescriptor, PageIsomorphicFile, PageServerFile

_HOOK_RESULT_KEYS = frozenset({"page_context"})


class ServerHooksState(enum.Enum):
    """What the isomorphic chain asked for the server chain."""

    UNSET = "unset"
    SKIP_REQUESTED = "skip_requested"
    RUN_REQUESTED = "run_requested"


class Layer(enum.Enum):
    ISOMORPHIC = "isomorphic"
    SERVER = "server"


# -- Hook results --


def assert_hook_result(
    result: Any,
    hook: HookDescriptor,
    allowed_keys: Iterable[str] = _HOOK_RESULT_KEYS,
) -> Mapping[str, Any] | None:
    """Check that *result* is ``None`` or a dict with only *allowed_keys*."""
    if result is None:
        return None
    prefix = f"The {hook.hook_name}() hook exported by {hook.file_path}"
    allowed = sorted(allowed_keys)
    if not isinstance(result, Mapping):
        msg = f"{prefix} should return None or a dict, got {type(result).__name__}."
        raise UsageError(msg)
    unknown = sorted(set(result) - set(allowed))
    if unknown:
        msg = (
            f"{prefix} returned a dict with unknown keys {', '.join(unknown)}. "
            f"Only {', '.join(allowed)} are allowed."
        )
        raise UsageError(msg)
    return result


def assert_page_context_provided_by_user(value: Any, hook: HookDescriptor) -> Mapping[str, Any]:
    """Check the ``page_context`` a hook returned; ``None`` counts as empty."""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        msg = (
            f"The `page_context` returned by the {hook.hook_name}() hook of "
            f"{hook.file_path} should be a dict, got {type(value).__name__}."
        )
        raise UsageError(msg)
    if "_page_id" in value or "page_id" in value:
        msg = f"The {hook.hook_name}() hook of {hook.file_path} cannot change `page_id`."
        raise UsageError(msg)
    return value


# -- Controller --


class HookPageContext(PageContext):
    """The page context handed to isomorphic ``on_before_render`` hooks."""

    __slots__ = ("_controller",)

    def __init__(self, data: dict[str, Any], controller: OnBeforeRenderController) -> None:
        super().__init__(data)
        object.__setattr__(self, "_controller", controller)

    def skip_on_before_render_server_hooks(self) -> None:
        """Do not run the server ``on_before_render`` hook for this request."""
        self._controller.skip_server_hooks()

    async def run_on_before_render_server_hooks(self) -> dict[str, Any]:
        """Run the server ``on_before_render`` hook now.

        Returns ``{"page_context": {...}}`` with what the server hook
        added; those fields are also merged into the page context.
        """
        return await self._controller.run_server_hooks()


class OnBeforeRenderController:
    """Runs the before-render chains of one request.

    Records which hooks fired per layer and the first hook failure.
    """

    __slots__ = ("builder", "failure", "fired", "is_running", "state")

    def __init__(self, builder: PageContextBuilder) -> None:
        assert builder.page_files is not None
        self.builder = builder
        self.state = ServerHooksState.UNSET
        self.fired: dict[Layer, list[str]] = {Layer.ISOMORPHIC: [], Layer.SERVER: []}
        self.failure: HookFailure | None = None
        self.is_running = False

    # -- Layers --

    def candidates(self, layer: Layer) -> list[PageIsomorphicFile | PageServerFile]:
        """Files of *layer* defining the hook, page-specific first."""
        page_files = self.builder.page_files
        assert page_files is not None
        if layer is Layer.ISOMORPHIC:
            files = (page_files.page_isomorphic_file, page_files.page_isomorphic_file_default)
        else:
            files = (page_files.page_server_file, page_files.page_server_file_default)
        return [f for f in files if f is not None and f.on_before_render is not None]

    async def run_layer(self, layer: Layer) -> Mapping[str, Any]:
        """Run the authoritative hook of *layer* and merge its result."""
        candidates = self.candidates(layer)
        if not candidates:
            return {}
        hook = candidates[0].on_before_render
        assert hook is not None
        self.fired[layer].append(hook.file_path)

        if layer is Layer.ISOMORPHIC:
            view: PageContext = HookPageContext(self.builder.data, self)
        else:
            view = self.builder.view()

        try:
            result = await invoke(hook.func, view)
        except UsageError:
            raise
        except Exception as exc:
            # A server hook failing inside run_on_before_render_server_hooks()
            # is reported, not the isomorphic hook it propagated through
            if self.failure is None:
                self.failure = HookFailure(exc, hook.hook_name, hook.file_path)
            raise

        result = assert_hook_result(result, hook)
        addendum = assert_page_context_provided_by_user(result and result.get("page_context"), hook)
        self.builder.merge(addendum)
        return addendum

    # -- Control operations --

    def _transition(self, target: ServerHooksState) -> None:
        if not self.is_running:
            msg = (
                f"page_context.{_OPERATION_NAMES[target]}() can only be called while "
                "the isomorphic on_before_render() hook is running."
            )
            raise UsageError(msg)
        if self.state is not ServerHooksState.UNSET:
            if self.state is target:
                msg = f"You already called page_context.{_OPERATION_NAMES[target]}(); it can be called only once."
            else:
                msg = (
                    f"You cannot call page_context.{_OPERATION_NAMES[target]}() after having "
                    f"called page_context.{_OPERATION_NAMES[self.state]}()."
                )
            raise UsageError(msg)
        self.state = target

    def skip_server_hooks(self) -> None:
        self._transition(ServerHooksState.SKIP_REQUESTED)

    async def run_server_hooks(self) -> dict[str, Any]:
        self._transition(ServerHooksState.RUN_REQUESTED)
        addendum = await self.run_layer(Layer.SERVER)
        return {"page_context": dict(addendum)}

    # -- Driver --

    async def execute(self) -> None:
        builder = self.builder
        if self.candidates(Layer.ISOMORPHIC) and not builder.is_page_context_request:
            self.is_running = True
            try:
                await self.run_layer(Layer.ISOMORPHIC)
            finally:
                self.is_running = False
            if self.state is ServerHooksState.UNSET:
                self.state = ServerHooksState.RUN_REQUESTED
                await self.run_layer(Layer.SERVER)
            self.verify(Layer.ISOMORPHIC)
        else:
            self.state = ServerHooksState.RUN_REQUESTED
            await self.run_layer(Layer.SERVER)

        if self.state is ServerHooksState.RUN_REQUESTED:
            self.verify(Layer.SERVER)

    def verify(self, layer: Layer) -> None:
        """Exactly one hook of *layer* fired, if *layer* has any."""
        candidates = self.candidates(layer)
        if not candidates:
            return
        fired = self.fired[layer]
        if len(fired) != 1:
            files = ", ".join(f.file_path for f in candidates)
            msg = (
                f"Expected exactly one {layer.value} on_before_render() hook to run for page "
                f"{self.builder.page_id}, {len(fired)} ran. Candidates: {files}."
            )
            raise UsageError(msg)


_OPERATION_NAMES = {
    ServerHooksState.SKIP_REQUESTED: "skip_on_before_render_server_hooks",
    ServerHooksState.RUN_REQUESTED: "run_on_before_render_server_hooks",
}


async def execute_on_before_render_hooks(builder: PageContextBuilder) -> HookFailure | None:
    """Run the before-render hooks of the builder's page.

    Returns ``None`` on success or the ``HookFailure`` of the first hook
    that raised. ``UsageError`` propagates.
    """
    if builder.page_context_already_provided_by_prerender_hook:
        return None

    controller = OnBeforeRenderController(builder)
    try:
        await controller.execute()
    except UsageError:
        raise
    except Exception:
        if controller.failure is None:
            raise
        return controller.failure
    # An isomorphic hook may have caught the server hook's error
    return controller.failure
