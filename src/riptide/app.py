"""
Typed request/response routes served over CherryPy.

A route is a plain function `handler(ctx, request) -> response` whose request
and response types are dataclasses named `<Name>Request` / `<Name>Response`.
Every route is a POST on `/riptide/<Name>` taking a JSON body and answering
with a `{"Body": ..., "Status": <int>}` envelope. The same route table feeds
the TypeScript client generator.
"""
from __future__ import annotations

import dataclasses
import enum
import inspect
import json
import logging
import pathlib
import time
import typing as t
from dataclasses import dataclass, field

import cherrypy
import pydantic
from pydantic import TypeAdapter

from riptide.client import generate_client
from riptide.config import Settings, split_host
from riptide.descriptors import Kind, TypeDescriptor, TypeRef, describe_type, tags_for_field
from riptide.errors import DuplicateRoute, HeaderTypeAlreadySet, InvalidRouteSignature
from riptide.middleware import Handler, Middleware, collapse_middleware
from riptide.status import Status

logger = logging.getLogger(__name__)

ROUTE_PREFIX = "/riptide/"
REQUEST_SUFFIX = "Request"
RESPONSE_SUFFIX = "Response"


# ============================================================
# Request context
# ============================================================

@dataclass
class RequestContext:
    """Per-request state handed to middleware and handlers."""
    headers: dict[str, str] = field(default_factory=dict)
    method: str = ""
    path: str = ""
    values: dict[str, t.Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.headers = {str(key).lower(): str(value) for key, value in self.headers.items()}

    def get_header(self, key: str) -> str:
        """Case-insensitive header lookup; missing headers are ''."""
        return self.headers.get(key.lower(), "")


# ============================================================
# Envelopes + wire conversion
# ============================================================

def build_envelope(body: t.Any, status: Status = Status.STATUS_OK) -> dict[str, t.Any]:
    return {"Body": body, "Status": int(status)}


def build_error(status: Status, message: str) -> dict[str, t.Any]:
    return build_envelope({"ErrorMessage": message}, status)


def _is_zero(value: t.Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (bool, int, float, str, bytes, list, tuple, set, frozenset, dict)):
        return not value
    return False


def to_wire(value: t.Any) -> t.Any:
    """Convert a response value to JSON-ready data using wire names."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        plain: dict[str, t.Any] = {}
        for dataclass_field in dataclasses.fields(value):
            tags = tags_for_field(dataclass_field)
            if tags.ignore:
                continue
            field_value = getattr(value, dataclass_field.name)
            if tags.omit_empty and _is_zero(field_value):
                continue
            plain[tags.wire_name or dataclass_field.name] = to_wire(field_value)
        return plain
    if isinstance(value, enum.Enum):
        return to_wire(value.value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_wire(item) for item in value]
    if isinstance(value, dict):
        return {to_wire(key): to_wire(item) for key, item in value.items()}
    return value


def from_wire(type_ref: TypeRef, value: t.Any) -> t.Any:
    """Rename wire keys back to dataclass field names, recursively."""
    if value is None:
        return None
    if type_ref.kind is Kind.POINTER and type_ref.elem is not None:
        return from_wire(type_ref.elem, value)
    if type_ref.kind is Kind.STRUCT and type_ref.struct is not None and isinstance(value, dict):
        renamed: dict[str, t.Any] = {}
        for field_descriptor in type_ref.struct.fields:
            if field_descriptor.tags.ignore:
                continue
            wire_name = field_descriptor.tags.wire_name or field_descriptor.name
            if wire_name in value:
                renamed[field_descriptor.name] = from_wire(field_descriptor.type, value[wire_name])
        return renamed
    if type_ref.kind is Kind.SLICE and type_ref.elem is not None and isinstance(value, list):
        return [from_wire(type_ref.elem, item) for item in value]
    if type_ref.kind is Kind.MAP and type_ref.value is not None and isinstance(value, dict):
        return {key: from_wire(type_ref.value, item) for key, item in value.items()}
    return value


def missing_required_fields(value: t.Any, path: str = "") -> list[str]:
    """
    Wire paths of `required` fields holding a zero value, looking inside
    nested structs, lists and maps:

      ["input_name", "Items[0].name"]
    """
    if isinstance(value, (list, tuple)):
        return [name for index, item in enumerate(value) for name in missing_required_fields(item, f"{path}[{index}]")]
    if isinstance(value, dict):
        return [name for key, item in value.items() for name in missing_required_fields(item, f"{path}[{key}]")]
    if not (dataclasses.is_dataclass(value) and not isinstance(value, type)):
        return []

    missing: list[str] = []
    for dataclass_field in dataclasses.fields(value):
        tags = tags_for_field(dataclass_field)
        field_value = getattr(value, dataclass_field.name)
        wire_name = tags.wire_name or dataclass_field.name
        qualified_name = f"{path}.{wire_name}" if path else wire_name
        if tags.required and _is_zero(field_value):
            missing.append(qualified_name)
        missing.extend(missing_required_fields(field_value, qualified_name))
    return missing


# ============================================================
# Routes
# ============================================================

def extract_route_name(request_type: t.Any, response_type: t.Any) -> str:
    """
    Call name shared by `<Name>Request` / `<Name>Response`.

      extract_route_name(SayHelloRequest, SayHelloResponse) -> "SayHello"
    """
    for io_type in (request_type, response_type):
        if not (isinstance(io_type, type) and dataclasses.is_dataclass(io_type)):
            raise InvalidRouteSignature(f"route input/output must be a dataclass, got {io_type!r}")

    if request_type is response_type or request_type.__name__ == response_type.__name__:
        raise InvalidRouteSignature("the input and output parameters must have distinct types")

    request_name = request_type.__name__
    response_name = response_type.__name__
    if not (request_name.endswith(REQUEST_SUFFIX) and response_name.endswith(RESPONSE_SUFFIX)):
        raise InvalidRouteSignature(
            "input and output types should match the pattern {methodName}Request/{methodName}Response"
        )

    method_name = request_name[: -len(REQUEST_SUFFIX)]
    if not method_name or method_name != response_name[: -len(RESPONSE_SUFFIX)]:
        raise InvalidRouteSignature(
            "input and output types should match the pattern {methodName}Request/{methodName}Response"
        )
    return method_name


def _handler_io_types(handler: t.Callable[..., t.Any]) -> tuple[t.Any, t.Any]:
    """Read (request_type, response_type) from handler(ctx, request) -> response."""
    parameters = [
        parameter
        for parameter in inspect.signature(handler).parameters.values()
        if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    if len(parameters) != 2:
        raise InvalidRouteSignature(f"{getattr(handler, '__name__', handler)!r} must take (ctx, request)")

    try:
        hints = t.get_type_hints(handler)
    except NameError as exc:
        raise InvalidRouteSignature(f"cannot resolve annotations of {handler!r}: {exc}") from exc

    request_type = hints.get(parameters[1].name)
    response_type = hints.get("return")
    if request_type is None or response_type is None:
        raise InvalidRouteSignature(f"{getattr(handler, '__name__', handler)!r} must annotate its request and return types")

    # Optional[XResponse] -> XResponse
    response_ref = describe_type(response_type)
    if response_ref.kind is Kind.POINTER and response_ref.elem is not None and response_ref.elem.struct is not None:
        response_type = response_ref.elem.struct.source
    return request_type, response_type


@dataclass
class RouteContainer:
    """A resolved route: types, path and the middleware-wrapped body handler."""
    fn_name: str
    path: str
    request_type: type
    response_type: type
    handle: Handler

    def __call__(self, ctx: RequestContext, body: bytes) -> dict[str, t.Any]:
        """Run the route against a raw body, always returning an envelope."""
        try:
            return self.handle(ctx, body)
        except Exception as exc:
            logger.exception("handler %s failed", self.fn_name)
            return build_error(Status.STATUS_INTERNAL, f"unable to execute handler: {exc}")


class Route:
    """
    A typed handler waiting to be attached to an App.

      def say_hello(ctx: RequestContext, req: SayHelloRequest) -> SayHelloResponse:
          return SayHelloResponse(message=f"Hello {req.name}")

      Route(say_hello).attach(app, auth_middleware)
    """

    def __init__(self, handler: t.Callable[[RequestContext, t.Any], t.Any]) -> None:
        self.handler = handler
        self.request_type, self.response_type = _handler_io_types(handler)
        self.fn_name = extract_route_name(self.request_type, self.response_type)
        self.path = f"{ROUTE_PREFIX}{self.fn_name}"
        self._request_ref = TypeRef.struct_of(TypeDescriptor.of(self.request_type))
        self._request_adapter: TypeAdapter[t.Any] = TypeAdapter(self.request_type)

    def handle_body(self, ctx: RequestContext, body: t.Any) -> dict[str, t.Any]:
        """Decode, validate and run the handler; failures become error envelopes."""
        try:
            payload = json.loads(body) if isinstance(body, (bytes, bytearray, str)) else body
        except ValueError as exc:
            return build_error(Status.STATUS_INVALID_ARGUMENT, str(exc))

        try:
            request = self._request_adapter.validate_python(from_wire(self._request_ref, payload))
        except pydantic.ValidationError as exc:
            return build_error(Status.STATUS_INVALID_ARGUMENT, str(exc))

        missing = missing_required_fields(request)
        if missing:
            return build_error(Status.STATUS_INVALID_ARGUMENT, f"missing required fields: {', '.join(missing)}")

        try:
            response = self.handler(ctx, request)
        except Exception as exc:
            logger.debug("handler %s raised %r", self.fn_name, exc)
            return build_error(Status.STATUS_INTERNAL, str(exc))

        return build_envelope(to_wire(response))

    def container(self, middleware: t.Sequence[Middleware] = ()) -> RouteContainer:
        return RouteContainer(
            fn_name=self.fn_name,
            path=self.path,
            request_type=self.request_type,
            response_type=self.response_type,
            handle=collapse_middleware(list(middleware), self.fn_name, self.handle_body),
        )

    def attach(self, app: App, *middleware: Middleware) -> RouteContainer:
        route_container = self.container(middleware)
        app.add_handler(route_container)
        return route_container


# ============================================================
# Static directories
# ============================================================

@dataclass
class StaticDir:
    serve_path: str
    directory: pathlib.Path

    def resolve(self, relative_segments: t.Sequence[str]) -> pathlib.Path | None:
        """Existing file under the directory, or None (traversal included)."""
        root = self.directory.resolve()
        candidate = (root / pathlib.Path(*relative_segments)).resolve() if relative_segments else root

        # Prevent path traversal
        if root not in candidate.parents and candidate != root:
            return None
        if candidate.is_dir():
            candidate = candidate / "index.html"
        return candidate if candidate.is_file() else None


# ============================================================
# App
# ============================================================

def _pad(text: str, width: int) -> str:
    return text.ljust(width)


class App:
    """Route table, client generator and CherryPy server for one backend."""

    def __init__(
        self,
        host: str,
        ts_output_location: str = "",
        *,
        dev_reload: bool = False,
        quiet: bool = True,
    ) -> None:
        self.host = host
        self.ts_output_location = ts_output_location
        self.dev_reload = dev_reload
        self.quiet = quiet
        self.handlers: list[RouteContainer] = []
        self.header_type: type | None = None
        self.app_constants: t.Any = None
        self.static_dirs: list[StaticDir] = []

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> App:
        settings = settings or Settings()
        return cls(
            settings.host,
            settings.ts_output,
            dev_reload=settings.dev_reload,
            quiet=settings.quiet,
        )

    # ---- declaration

    def add_handler(self, route_container: RouteContainer) -> None:
        for existing in self.handlers:
            if existing.path == route_container.path:
                raise DuplicateRoute(route_container.fn_name, route_container.path)
        self.handlers.append(route_container)

    def add_header_type(self, header_type: type) -> None:
        if self.header_type is not None:
            raise HeaderTypeAlreadySet()
        if not (isinstance(header_type, type) and dataclasses.is_dataclass(header_type)):
            raise TypeError(f"header type must be a dataclass, got {header_type!r}")
        self.header_type = header_type

    def add_app_constants(self, app_constants: t.Any) -> None:
        self.app_constants = app_constants

    def add_static_dir(self, serve_path: str, directory: str | pathlib.Path) -> None:
        if any(marker in serve_path for marker in "{}*"):
            raise ValueError("static directories do not permit URL parameters")
        if not serve_path.startswith("/"):
            serve_path = "/" + serve_path
        self.static_dirs.append(StaticDir(serve_path=serve_path.rstrip("/") or "/", directory=pathlib.Path(directory)))

    def method_names(self) -> list[str]:
        return [handler.fn_name for handler in self.handlers]

    # ---- code generation

    def generate_code(self) -> str:
        return generate_client(
            self.handlers,
            self.host,
            header_type=self.header_type,
            app_constants=self.app_constants,
            quiet=self.quiet,
        )

    def write_code(self) -> pathlib.Path | None:
        """Write the client file; the file is untouched if generation fails."""
        if not self.ts_output_location:
            logger.info("Not writing out code as the TypeScript output location is blank")
            return None

        code = self.generate_code()
        output_path = pathlib.Path(self.ts_output_location)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(code, encoding="utf-8")
        return output_path

    # ---- dispatch

    def route_table(self) -> list[str]:
        """One padded `path  [Req -> Res]` line per route."""
        if not self.handlers:
            return []
        path_width = max(len(handler.path) for handler in self.handlers)
        request_width = max(len(handler.request_type.__name__) for handler in self.handlers)
        response_width = max(len(handler.response_type.__name__) for handler in self.handlers)
        return [
            f"{_pad(handler.path, path_width)}\t "
            f"[{_pad(handler.request_type.__name__, request_width)} -> "
            f"{_pad(handler.response_type.__name__, response_width)}]"
            for handler in self.handlers
        ]

    def find_handler(self, path: str) -> RouteContainer | None:
        for handler in self.handlers:
            if handler.path == path:
                return handler
        return None

    def dispatch(self, path: str, body: bytes, headers: t.Mapping[str, str] | None = None) -> tuple[int, dict[str, t.Any]]:
        """Run one request without a server: returns (http status, envelope)."""
        route_container = self.find_handler(path)
        if route_container is None:
            logger.warning("Got not found request %s", path)
            return 404, build_error(Status.STATUS_NOT_FOUND, "Not found")

        ctx = RequestContext(headers=dict(headers or {}), method=route_container.fn_name, path=path)
        return 200, route_container(ctx, body)

    # ---- serving

    def assemble_handlers(self) -> None:
        for line in self.route_table():
            logger.info("Attaching: %s", line)

    def start(self) -> None:
        started = time.perf_counter()
        self.assemble_handlers()
        logger.info("Assembled handlers in %.3fs", time.perf_counter() - started)
        self.write_code()
        logger.info("%s %.3fs", _pad("Wrote code in", 21), time.perf_counter() - started)

        socket_host, socket_port = split_host(self.host)
        cherrypy.config.update({
            "server.socket_host": socket_host,
            "server.socket_port": socket_port,
            "tools.trailing_slash.on": False,
            "engine.autoreload.on": self.dev_reload,
        })
        mount(self)

        logger.info("Listening on: %s", self.host)
        cherrypy.engine.start()
        cherrypy.engine.block()


# ============================================================
# CherryPy surface
# ============================================================

class RiptideDispatcher:
    """Mounted at /. Uses default() to catch every path and dispatch it."""

    def __init__(self, app: App) -> None:
        self.app = app

    @cherrypy.expose
    def default(self, *vpath, **_params):
        path = "/" + "/".join(segment for segment in vpath if segment)
        method = (cherrypy.request.method or "GET").upper()

        if path.startswith(ROUTE_PREFIX) and self.app.find_handler(path) is not None:
            if method != "POST":
                raise cherrypy.HTTPError(405)
            body = cherrypy.request.body.read() if cherrypy.request.body else b""
            status_code, envelope = self.app.dispatch(path, body, dict(cherrypy.request.headers))
            return _serialize(status_code, envelope)

        if method in {"GET", "HEAD"}:
            served = self._serve_static(path)
            if served is not None:
                return served

        status_code, envelope = self.app.dispatch(path, b"", {})
        return _serialize(status_code, envelope)

    @cherrypy.expose
    def index(self):
        return self.default()

    def _serve_static(self, path: str) -> t.Any:
        for static_dir in self.app.static_dirs:
            serve_path = static_dir.serve_path
            if serve_path != "/" and path == serve_path and not cherrypy.request.path_info.endswith("/"):
                raise cherrypy.HTTPRedirect(serve_path + "/", 301)
            if serve_path == "/" or path == serve_path or path.startswith(serve_path + "/"):
                relative = path[len(serve_path):] if serve_path != "/" else path
                candidate = static_dir.resolve([segment for segment in relative.split("/") if segment])
                if candidate is None:
                    raise cherrypy.HTTPError(404)
                return cherrypy.lib.static.serve_file(str(candidate))
        return None


def _serialize(status_code: int, envelope: dict[str, t.Any]) -> bytes:
    cherrypy.response.status = status_code
    cherrypy.response.headers["Content-Type"] = "application/json; charset=utf-8"
    return json.dumps(envelope).encode("utf-8")


def mount(app: App) -> RiptideDispatcher:
    dispatcher = RiptideDispatcher(app)
    cherrypy.tree.mount(dispatcher, "/", config={
        "/": {
            # Route bodies are JSON whatever the Content-Type; keep them unread
            # so form bodies are not parsed into params first.
            "request.process_request_body": False,
            "tools.encode.on": True,
            "tools.encode.encoding": "utf-8",
        }
    })
    return dispatcher
