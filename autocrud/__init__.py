"""
autocrud - REST endpoint generation for FastAPI.

autocrud attaches list, get, create, update and delete routes for a data
resource to a FastAPI application in one call, with pagination, filtering,
sorting, projection, reference population, per-route middleware and
lifecycle hooks.

Main Exports:
    Routing:
        - autocrud: Register the five CRUD routes for a resource
        - CrudRouter: The handlers behind a set of generated routes

    Configuration:
        - AutoCrudOptions: Route options (pagination, sort, filter, ...)
        - normalize_options: Build options from a partial mapping

    Accessors:
        - MemoryResource: In-memory resource accessor
        - MotorResource: MongoDB resource accessor (Motor)
        - ResourceAccessor: Accessor contract

    Modules:
        - exceptions: Exception classes

Example:
    >>> from fastapi import FastAPI
    >>> from autocrud import autocrud, MemoryResource
    >>>
    >>> app = FastAPI()
    >>> autocrud(app, MemoryResource(), "/api/users", {
    ...     "pagination": {"default_limit": 10},
    ...     "filter": {"allowed": ["role", "age"]},
    ... })
"""

__version__ = "0.1.0"

from . import exceptions
from .config import (
    AutoCrudOptions,
    CrudHooks,
    FilterOptions,
    MiddlewareOptions,
    PaginationOptions,
    SortOptions,
    normalize_options,
)
from .db import MemoryResource, MotorResource, Query, ResourceAccessor
from .query import QueryEngine, QueryIntent, parse_sort, resolve_query_intent
from .response import ListResponse, PaginationResult
from .router import CrudRouter, autocrud

__all__ = [
    # Version
    "__version__",
    # Routing
    "autocrud",
    "CrudRouter",
    # Configuration
    "AutoCrudOptions",
    "PaginationOptions",
    "SortOptions",
    "FilterOptions",
    "MiddlewareOptions",
    "CrudHooks",
    "normalize_options",
    # Queries
    "QueryIntent",
    "QueryEngine",
    "parse_sort",
    "resolve_query_intent",
    # Accessors
    "ResourceAccessor",
    "Query",
    "MemoryResource",
    "MotorResource",
    # Responses
    "ListResponse",
    "PaginationResult",
    # Modules
    "exceptions",
]
