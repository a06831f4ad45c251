"""Configuration models for generated CRUD routes.

Every section defaults independently, so callers can pass any subset of
options. Keys are accepted in snake_case or camelCase (``default_limit`` or
``defaultLimit``), and an explicit ``None`` behaves exactly like an absent
key. Normalized options are frozen and shared by all handlers of a route set.
"""

import inspect
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_SORT = "-createdAt"

ROUTE_NAMES = ("list", "get_one", "create", "update", "delete")
_LIMIT_DEFAULTS = {"default_limit": DEFAULT_LIMIT, "max_limit": MAX_LIMIT}

Middleware = Callable[..., Any]
Hook = Callable[..., Any]


class _Options(BaseModel):
    """Base for all option sections."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PaginationOptions(_Options):
    """Pagination settings for the list route.

    Attributes:
        enabled: Window results and report pagination metadata
        default_limit: Page size used when the request gives none
        max_limit: Upper bound applied to any requested page size
    """

    enabled: bool = True
    default_limit: PositiveInt = DEFAULT_LIMIT
    max_limit: PositiveInt = MAX_LIMIT

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled_unless_false(cls, value: Any) -> Any:
        return True if value is None else value

    @field_validator("default_limit", "max_limit", mode="before")
    @classmethod
    def _falsy_limit_is_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == 0:
            return _LIMIT_DEFAULTS[info.field_name]
        return value


class SortOptions(_Options):
    """Sort settings for the list route.

    ``allowed`` restricts the fields a client may sort on; empty means any.
    """

    default: str = DEFAULT_SORT
    allowed: FrozenSet[str] = frozenset()

    @field_validator("default", mode="before")
    @classmethod
    def _empty_default(cls, value: Any) -> Any:
        return value or DEFAULT_SORT

    @field_validator("allowed", mode="before")
    @classmethod
    def _none_allowed(cls, value: Any) -> Any:
        return frozenset() if value is None else value


class FilterOptions(_Options):
    """Filter settings for the list route.

    ``allowed`` restricts the query-string keys that become filter terms;
    empty means any.
    """

    enabled: bool = True
    allowed: FrozenSet[str] = frozenset()

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled_unless_false(cls, value: Any) -> Any:
        return True if value is None else value

    @field_validator("allowed", mode="before")
    @classmethod
    def _none_allowed(cls, value: Any) -> Any:
        return frozenset() if value is None else value


class MiddlewareOptions(_Options):
    """Per-route middleware chains.

    Middleware are FastAPI dependency callables. The ``all`` chain runs
    before the route's own chain on every route.
    """

    all: Tuple[Middleware, ...] = ()
    list: Tuple[Middleware, ...] = ()
    get_one: Tuple[Middleware, ...] = ()
    create: Tuple[Middleware, ...] = ()
    update: Tuple[Middleware, ...] = ()
    delete: Tuple[Middleware, ...] = ()

    @field_validator("*", mode="before")
    @classmethod
    def _none_chain(cls, value: Any) -> Any:
        return () if value is None else value

    def chain(self, route: str) -> Tuple[Middleware, ...]:
        """Get the full middleware chain for a route.

        Args:
            route: One of ``list``, ``get_one``, ``create``, ``update``, ``delete``

        Returns:
            The ``all`` chain followed by the route-specific chain

        Raises:
            ValueError: If the route name is unknown
        """
        if route not in ROUTE_NAMES:
            raise ValueError(f"Unknown route: {route}")
        return self.all + getattr(self, route)


class CrudHooks(_Options):
    """Lifecycle callbacks around write operations.

    Each hook may be a plain function or a coroutine function. Create and
    update hooks receive ``(request, data)`` before and ``(request, doc)``
    after the write; delete hooks receive ``(request, id)``.
    """

    before_create: Optional[Hook] = None
    after_create: Optional[Hook] = None
    before_update: Optional[Hook] = None
    after_update: Optional[Hook] = None
    before_delete: Optional[Hook] = None
    after_delete: Optional[Hook] = None

    async def run(self, name: str, *args: Any) -> None:
        """Invoke a hook by name if it is configured.

        Args:
            name: Hook attribute name, e.g. ``before_create``
            *args: Arguments passed to the hook
        """
        hook = getattr(self, name)
        if hook is None:
            return
        result = hook(*args)
        if inspect.isawaitable(result):
            await result


class AutoCrudOptions(_Options):
    """Options for a generated set of CRUD routes.

    Attributes:
        pagination: Pagination settings
        sort: Sort settings
        filter: Filter settings
        middleware: Per-route middleware chains
        projection: Field inclusion/exclusion mask passed to the accessor
        populate: Reference fields to expand, applied in order
        validate_body: Predicate applied to create bodies (sync or async)
        hooks: Lifecycle hooks
        tags: OpenAPI tags for the generated routes
    """

    pagination: PaginationOptions = Field(default_factory=PaginationOptions)
    sort: SortOptions = Field(default_factory=SortOptions)
    filter: FilterOptions = Field(default_factory=FilterOptions)
    middleware: MiddlewareOptions = Field(default_factory=MiddlewareOptions)
    projection: Dict[str, Any] = Field(default_factory=dict)
    populate: Tuple[str, ...] = ()
    validate_body: Optional[Callable[[Any], Any]] = None
    hooks: CrudHooks = Field(default_factory=CrudHooks)
    tags: Optional[List[str]] = None

    @field_validator("pagination", "sort", "filter", "middleware", "hooks", mode="before")
    @classmethod
    def _none_section(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("projection", mode="before")
    @classmethod
    def _none_projection(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("populate", mode="before")
    @classmethod
    def _none_populate(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    async def check_body(self, body: Any) -> bool:
        """Run the body predicate, treating an absent predicate as a pass."""
        if self.validate_body is None:
            return True
        result = self.validate_body(body)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)


def normalize_options(
    options: Union[AutoCrudOptions, Mapping[str, Any], None] = None,
    **overrides: Any,
) -> AutoCrudOptions:
    """Build fully-populated options from a partial specification.

    Args:
        options: Options instance, mapping of (partial) options, or None
        **overrides: Top-level options taking precedence over ``options``

    Returns:
        Frozen AutoCrudOptions

    Raises:
        pydantic.ValidationError: If an option has an invalid value
    """
    if isinstance(options, AutoCrudOptions):
        if not overrides:
            return options
        options = options.model_dump(exclude_unset=True)
    data = dict(options or {})
    data.update(overrides)
    return AutoCrudOptions.model_validate(data)
