"""CRUD route generation for FastAPI.

``autocrud(app, model, "/users", options)`` registers five routes on a
FastAPI application or APIRouter:

    GET    /users        list documents (paginated, filtered, sorted)
    GET    /users/{id}   fetch one document
    POST   /users        create a document
    PUT    /users/{id}   update a document
    DELETE /users/{id}   delete a document

Handlers translate request parameters into calls on the resource accessor
and always answer failures with ``{"error": true, "message": ...}``.
"""

import asyncio
import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Tuple, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .config import AutoCrudOptions, normalize_options
from .db.resource import ACCESSOR_METHODS, Query, ResourceAccessor
from .exceptions import (
    BodyValidationError,
    DocumentNotFoundError,
    MissingIdentifierError,
)
from .query import resolve_query_intent
from .response import (
    DeleteResponse,
    PaginationResult,
    encode_document,
    error_response,
    list_payload,
)

logger = logging.getLogger(__name__)

RouteSpec = Tuple[str, str, str, Callable[..., Any], int, str]


class CrudRouter:
    """The five CRUD handlers for one resource.

    Attributes:
        model: Resource accessor the handlers operate on
        base_route: Path the collection is served under
        options: Normalized, frozen route options
    """

    def __init__(
        self,
        model: ResourceAccessor,
        base_route: str,
        options: Union[AutoCrudOptions, Mapping[str, Any], None] = None,
    ) -> None:
        """Initialize the router.

        Args:
            model: Resource accessor
            base_route: Collection path, e.g. ``/users``
            options: Route options (instance, partial mapping or None)

        Raises:
            TypeError: If ``model`` does not implement the accessor contract
        """
        missing = [name for name in ACCESSOR_METHODS if not callable(getattr(model, name, None))]
        if missing:
            raise TypeError(
                f"{type(model).__name__} is not a resource accessor, missing: {', '.join(missing)}"
            )
        self.model = model
        self.base_route = base_route.rstrip("/")
        self.options = normalize_options(options)

    @property
    def collection_path(self) -> str:
        return self.base_route or "/"

    @property
    def item_path(self) -> str:
        return f"{self.base_route}/{{id}}"

    @property
    def resource_name(self) -> str:
        return self.base_route.strip("/").replace("/", "_") or "root"

    def routes(self) -> List[RouteSpec]:
        """List the generated routes.

        Returns:
            Tuples of (route name, HTTP method, path, handler, success status, summary)
        """
        return [
            ("list", "GET", self.collection_path, self.list_documents, 200, "List documents"),
            ("get_one", "GET", self.item_path, self.get_document, 200, "Get a document"),
            ("create", "POST", self.collection_path, self.create_document, 201, "Create a document"),
            ("update", "PUT", self.item_path, self.update_document, 200, "Update a document"),
            ("delete", "DELETE", self.item_path, self.delete_document, 200, "Delete a document"),
        ]

    def register(self, registrar: Any) -> None:
        """Register the five routes.

        Args:
            registrar: FastAPI application or APIRouter
        """
        tags = self.options.tags or [self.resource_name]
        routes = self.routes()
        for name, method, path, handler, status_code, summary in routes:
            registrar.add_api_route(
                path,
                handler,
                methods=[method],
                dependencies=[Depends(step) for step in self.options.middleware.chain(name)],
                status_code=status_code,
                summary=summary,
                tags=tags,
                name=f"{self.resource_name}_{name}",
            )
        methods = ", ".join(f"{route[1]} {route[2]}" for route in routes)
        logger.info(f"Registered CRUD routes for {self.collection_path}: {methods}")

    def as_router(self, **kwargs: Any) -> APIRouter:
        """Build an APIRouter holding the five routes.

        Args:
            **kwargs: Passed to the APIRouter constructor

        Returns:
            APIRouter ready for ``app.include_router``
        """
        router = APIRouter(**kwargs)
        self.register(router)
        return router

    def _populate(self, query: Query) -> Query:
        for field in self.options.populate:
            query = query.populate(field)
        return query

    def _projection(self) -> Dict[str, Any]:
        return dict(self.options.projection)

    @staticmethod
    def _require_id(request: Request) -> str:
        id = request.path_params.get("id")
        if not id:
            raise MissingIdentifierError()
        return id

    @staticmethod
    async def _read_body(request: Request) -> Any:
        if not (await request.body()).strip():
            return {}
        return await request.json()

    async def list_documents(self, request: Request) -> JSONResponse:
        """List documents matching the query-string filter."""
        try:
            intent = resolve_query_intent(request.query_params, self.options)
            query = self.model.find(intent.filter, self._projection()).sort(intent.sort)
            query = self._populate(query)

            if not self.options.pagination.enabled:
                data = await query.exec()
                return JSONResponse(list_payload(data))

            data, total = await asyncio.gather(
                query.skip(intent.skip).limit(intent.limit).exec(),
                self.model.count_documents(intent.filter),
            )
            total_pages = math.ceil(total / intent.limit)
            pagination = PaginationResult(
                total=total,
                page=intent.page,
                limit=intent.limit,
                total_pages=total_pages,
                has_next_page=intent.page < total_pages,
            )
            return JSONResponse(list_payload(data, pagination))
        except Exception as exc:
            return error_response(
                request, exc, status_code=500, fallback="Failed to fetch documents"
            )

    async def get_document(self, request: Request) -> JSONResponse:
        """Fetch a single document by id."""
        try:
            id = self._require_id(request)
            query = self._populate(self.model.find_by_id(id, self._projection()))
            document = await query.exec()
            if document is None:
                raise DocumentNotFoundError()
            return JSONResponse(encode_document(document))
        except Exception as exc:
            return error_response(
                request, exc, status_code=500, fallback="Failed to fetch document"
            )

    async def create_document(self, request: Request) -> JSONResponse:
        """Create a document from the request body.

        Runs the body predicate, then ``before_create``, the insert and
        ``after_create``, stopping at the first failure.
        """
        hooks = self.options.hooks
        try:
            data = await self._read_body(request)
            if not await self.options.check_body(data):
                raise BodyValidationError()
            await hooks.run("before_create", request, data)
            document = await self.model.create(data)
            await hooks.run("after_create", request, document)
            return JSONResponse(encode_document(document), status_code=201)
        except Exception as exc:
            return error_response(
                request, exc, status_code=400, fallback="Failed to create document"
            )

    async def update_document(self, request: Request) -> JSONResponse:
        """Apply the request body to an existing document.

        The body predicate is not applied since updates may be partial; the
        accessor validates the updated document instead.
        """
        hooks = self.options.hooks
        try:
            id = self._require_id(request)
            data = await self._read_body(request)
            await hooks.run("before_update", request, data)
            document = await self.model.find_by_id_and_update(
                id, data, new=True, run_validators=True
            )
            if document is None:
                raise DocumentNotFoundError()
            await hooks.run("after_update", request, document)
            return JSONResponse(encode_document(document))
        except Exception as exc:
            return error_response(
                request, exc, status_code=400, fallback="Failed to update document"
            )

    async def delete_document(self, request: Request) -> JSONResponse:
        """Delete a document by id.

        An exception raised by ``before_delete`` aborts the deletion.
        """
        hooks = self.options.hooks
        try:
            id = self._require_id(request)
            await hooks.run("before_delete", request, id)
            document = await self.model.find_by_id_and_delete(id)
            if document is None:
                raise DocumentNotFoundError()
            await hooks.run("after_delete", request, id)
            return JSONResponse(DeleteResponse(id=id).model_dump())
        except Exception as exc:
            return error_response(
                request, exc, status_code=500, fallback="Failed to delete document"
            )


def autocrud(
    app: Any,
    model: ResourceAccessor,
    base_route: str,
    options: Union[AutoCrudOptions, Mapping[str, Any], None] = None,
    **kwargs: Any,
) -> CrudRouter:
    """Register list, get, create, update and delete routes for a resource.

    Args:
        app: FastAPI application or APIRouter
        model: Resource accessor, e.g. MemoryResource or MotorResource
        base_route: Collection path, e.g. ``/users``
        options: Route options (instance, partial mapping or None)
        **kwargs: Top-level options overriding ``options``

    Returns:
        The CrudRouter owning the registered handlers

    Example:
        >>> app = FastAPI()
        >>> autocrud(app, MemoryResource(), "/users", {"sort": {"allowed": ["name"]}})
    """
    router = CrudRouter(model, base_route, normalize_options(options, **kwargs))
    router.register(app)
    return router
