"""Capability provider contract and a function-backed implementation.

Every tool implementation is consumed through the CapabilityProvider
protocol. FunctionCapabilityProvider turns plain Python callables into
capabilities, inferring parameter schemas from signatures and type hints.
"""

import inspect
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Literal,
    Protocol,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    runtime_checkable,
)

from switchboard_server.tools.types import (
    CapabilityDescriptor,
    CapabilityResult,
    ParameterSpec,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class CapabilityProvider(Protocol):
    """Interface every tool-implementation collaborator exposes."""

    provider_name: str

    async def initialize(self) -> CapabilityResult:
        """One-time credential/setup step."""
        ...

    def list_capabilities(self) -> list[CapabilityDescriptor]:
        """Describe every capability the provider exposes."""
        ...

    async def execute(
        self, capability_name: str, arguments: dict[str, Any]
    ) -> CapabilityResult:
        """Run one capability and report the outcome as data."""
        ...


_JSON_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    set: "array",
    dict: "object",
}


def _json_type(annotation: Any) -> tuple[str, tuple[Any, ...] | None]:
    """Map a type annotation to a JSON Schema type name and optional enum."""
    origin = get_origin(annotation)

    if origin is Literal:
        values = get_args(annotation)
        return _json_type(type(values[0]))[0], tuple(values)

    if origin is Union or (origin is not None and str(origin) == "types.UnionType"):
        # Optional[X] / X | None -> X
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return _json_type(args[0])
        return "string", None

    if origin is not None:
        return _JSON_TYPES.get(origin, "string"), None

    return _JSON_TYPES.get(annotation, "string"), None


def _first_paragraph(docstring: str | None) -> str:
    if not docstring:
        return ""
    return inspect.cleandoc(docstring).split("\n\n", 1)[0].replace("\n", " ")


def describe_callable(
    func: Callable[..., Any],
    name: str | None = None,
    description: str | None = None,
    parameter_descriptions: dict[str, str] | None = None,
) -> CapabilityDescriptor:
    """Build a CapabilityDescriptor from a callable's signature.

    Parameters without a default are required. Type hints are mapped to JSON
    Schema types; unannotated parameters are treated as strings.

    Args:
        func: The callable to describe
        name: Capability name (defaults to the function name)
        description: Description (defaults to the docstring's first paragraph)
        parameter_descriptions: Optional per-parameter descriptions

    Returns:
        CapabilityDescriptor: The inferred descriptor
    """
    signature = inspect.signature(func)
    try:
        hints = get_type_hints(func)
    except (NameError, TypeError):
        hints = {}

    parameter_descriptions = parameter_descriptions or {}
    parameters: dict[str, ParameterSpec] = {}

    for param in signature.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        json_type, enum = _json_type(hints.get(param.name, str))
        has_default = param.default is not inspect.Parameter.empty
        parameters[param.name] = ParameterSpec(
            type=json_type,
            description=parameter_descriptions.get(param.name, ""),
            required=not has_default,
            default=param.default if has_default else None,
            enum=enum,
        )

    return_hint = hints.get("return")
    return CapabilityDescriptor(
        name=name or func.__name__,
        description=description or _first_paragraph(func.__doc__),
        parameters=parameters,
        return_description=_json_type(return_hint)[0] if return_hint else "",
    )


class FunctionCapabilityProvider:
    """In-process capability provider backed by Python callables.

    Functions may be sync or async. A function can return a CapabilityResult
    directly; any other return value is wrapped in CapabilityResult.ok, and any
    exception becomes CapabilityResult.error.

    Example:
        >>> math_tools = FunctionCapabilityProvider("math")
        >>> @math_tools.capability(description="Add two numbers")
        ... def add(a: int, b: int) -> int:
        ...     return a + b
    """

    def __init__(
        self,
        provider_name: str,
        setup: Callable[[], Awaitable[None] | None] | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            provider_name: Unique provider name
            setup: Optional one-time setup hook run by initialize()
        """
        self.provider_name = provider_name
        self._setup = setup
        self._functions: dict[str, Callable[..., Any]] = {}
        self._descriptors: dict[str, CapabilityDescriptor] = {}
        self._initialized = False

    def add(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        parameter_descriptions: dict[str, str] | None = None,
    ) -> CapabilityDescriptor:
        """Expose a callable as a capability.

        Raises:
            ValueError: If a capability with the same name was already added
        """
        descriptor = describe_callable(func, name, description, parameter_descriptions)
        if descriptor.name in self._descriptors:
            raise ValueError(
                f"Capability '{descriptor.name}' already defined in provider "
                f"'{self.provider_name}'"
            )
        self._functions[descriptor.name] = func
        self._descriptors[descriptor.name] = descriptor
        return descriptor

    def capability(
        self,
        name: str | None = None,
        description: str | None = None,
        parameter_descriptions: dict[str, str] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of add()."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.add(func, name, description, parameter_descriptions)
            return func

        return decorator

    async def initialize(self) -> CapabilityResult:
        if self._initialized:
            return CapabilityResult.ok()
        if self._setup is not None:
            try:
                outcome = self._setup()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Setup failed for provider {self.provider_name}: {e}")
                return CapabilityResult.error(str(e))
        self._initialized = True
        return CapabilityResult.ok()

    def list_capabilities(self) -> list[CapabilityDescriptor]:
        return list(self._descriptors.values())

    async def execute(
        self, capability_name: str, arguments: dict[str, Any]
    ) -> CapabilityResult:
        func = self._functions.get(capability_name)
        if func is None:
            return CapabilityResult.error(
                f"Capability '{capability_name}' not found in provider "
                f"'{self.provider_name}'"
            )

        descriptor = self._descriptors[capability_name]
        missing = [
            param for param in descriptor.required_parameters if param not in arguments
        ]
        if missing:
            return CapabilityResult.error(
                f"Missing required parameters: {', '.join(missing)}"
            )

        kwargs = {
            key: value for key, value in arguments.items() if key in descriptor.parameters
        }
        try:
            outcome = func(**kwargs)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:
            logger.warning(
                f"Capability {capability_name} of provider {self.provider_name} failed: {e}"
            )
            return CapabilityResult.error(str(e))

        if isinstance(outcome, CapabilityResult):
            return outcome
        return CapabilityResult.ok(outcome)
