from __future__ import annotations

import datetime
import enum
import json
from dataclasses import dataclass, field

import pytest

from riptide.app import (
    App,
    RequestContext,
    Route,
    StaticDir,
    build_error,
    extract_route_name,
    to_wire,
)
from riptide.config import Settings
from riptide.descriptors import wire
from riptide.errors import DuplicateRoute, HeaderTypeAlreadySet, InvalidRouteSignature, UnresolvedFieldType
from riptide.status import Status


class Mood(enum.Enum):
    HAPPY = "happy"
    GRUMPY = "grumpy"


@dataclass
class SayHelloRequest:
    name: str = wire("input_name", required=True, default="")


@dataclass
class SayHelloResponse:
    message: str = ""
    mood: Mood = Mood.HAPPY
    trace: str = wire(omit_empty=True, default="")


@dataclass
class WhoAmIRequest:
    pass


@dataclass
class WhoAmIResponse:
    token: str = ""


@dataclass
class ExplodeRequest:
    pass


@dataclass
class ExplodeResponse:
    pass


@dataclass
class MismatchRequest:
    pass


@dataclass
class OtherResponse:
    pass


@dataclass
class Item:
    Name: str = wire("name", required=True, default="")


@dataclass
class SaveItemsRequest:
    Items: list[Item] = field(default_factory=list)


@dataclass
class SaveItemsResponse:
    Count: int = 0


@dataclass
class BrokenRequest:
    When: datetime.datetime | None = None


@dataclass
class BrokenResponse:
    pass


def say_hello(ctx: RequestContext, req: SayHelloRequest) -> SayHelloResponse:
    return SayHelloResponse(message=f"Hello {req.name}")


def who_am_i(ctx: RequestContext, req: WhoAmIRequest) -> WhoAmIResponse:
    return WhoAmIResponse(token=ctx.get_header("x-token"))


def explode(ctx: RequestContext, req: ExplodeRequest) -> ExplodeResponse:
    raise RuntimeError("boom")


def mismatch(ctx: RequestContext, req: MismatchRequest) -> OtherResponse:
    return OtherResponse()


def save_items(ctx: RequestContext, req: SaveItemsRequest) -> SaveItemsResponse | None:
    return SaveItemsResponse(Count=len(req.Items))


def broken(ctx: RequestContext, req: BrokenRequest) -> BrokenResponse:
    return BrokenResponse()


class MiddlewareRecorder:
    def __init__(self) -> None:
        self.run_count = 0
        self.called_method_names: list[str] = []

    def middleware(self, ctx, request, method, handler):
        self.run_count += 1
        self.called_method_names.append(method)
        return handler(ctx, request)


@pytest.fixture
def app() -> App:
    app = App("localhost:8000")
    Route(say_hello).attach(app)
    return app


# ============================================================
# Route declaration
# ============================================================

def test_route_name_and_path() -> None:
    route = Route(say_hello)
    assert route.fn_name == "SayHello"
    assert route.path == "/riptide/SayHello"
    assert route.request_type is SayHelloRequest
    assert route.response_type is SayHelloResponse


def test_optional_response_annotation_is_unwrapped() -> None:
    assert Route(save_items).response_type is SaveItemsResponse


def test_route_names_must_match() -> None:
    with pytest.raises(InvalidRouteSignature):
        Route(mismatch)
    with pytest.raises(InvalidRouteSignature):
        extract_route_name(SayHelloRequest, SayHelloRequest)
    with pytest.raises(InvalidRouteSignature):
        extract_route_name(dict, SayHelloResponse)


def test_handler_must_take_ctx_and_request() -> None:
    def no_request(ctx: RequestContext) -> SayHelloResponse:
        return SayHelloResponse()

    with pytest.raises(InvalidRouteSignature):
        Route(no_request)


def test_duplicate_route_raises(app: App) -> None:
    with pytest.raises(DuplicateRoute):
        Route(say_hello).attach(app)


def test_method_names(app: App) -> None:
    Route(who_am_i).attach(app)
    assert app.method_names() == ["SayHello", "WhoAmI"]


def test_header_type_can_only_be_set_once(app: App) -> None:
    app.add_header_type(SayHelloRequest)
    with pytest.raises(HeaderTypeAlreadySet):
        app.add_header_type(SayHelloResponse)


def test_static_dir_rejects_url_parameters(app: App) -> None:
    with pytest.raises(ValueError):
        app.add_static_dir("/files/*", ".")


# ============================================================
# Dispatch
# ============================================================

def test_valid_request(app: App) -> None:
    status_code, envelope = app.dispatch("/riptide/SayHello", b'{"input_name": "Ada"}')
    assert status_code == 200
    assert envelope == {"Body": {"message": "Hello Ada", "mood": "happy"}, "Status": 0}


def test_unparsable_body_is_invalid_argument(app: App) -> None:
    _, envelope = app.dispatch("/riptide/SayHello", b"not json")
    assert envelope["Status"] == Status.STATUS_INVALID_ARGUMENT
    assert envelope["Body"]["ErrorMessage"]


def test_wrong_field_type_is_invalid_argument(app: App) -> None:
    _, envelope = app.dispatch("/riptide/SayHello", b'{"input_name": {"nested": true}}')
    assert envelope["Status"] == Status.STATUS_INVALID_ARGUMENT


def test_required_field_rejects_zero_value(app: App) -> None:
    _, envelope = app.dispatch("/riptide/SayHello", b'{"input_name": ""}')
    assert envelope["Status"] == Status.STATUS_INVALID_ARGUMENT
    assert "input_name" in envelope["Body"]["ErrorMessage"]


def test_nested_wire_names_and_required_fields() -> None:
    app = App("localhost:8000")
    Route(save_items).attach(app)

    _, envelope = app.dispatch("/riptide/SaveItems", json.dumps({"Items": [{"name": "a"}, {"name": "b"}]}).encode())
    assert envelope == {"Body": {"Count": 2}, "Status": 0}

    _, envelope = app.dispatch("/riptide/SaveItems", json.dumps({"Items": [{"name": ""}]}).encode())
    assert envelope["Status"] == Status.STATUS_INVALID_ARGUMENT


def test_handler_exception_is_internal() -> None:
    app = App("localhost:8000")
    Route(explode).attach(app)
    _, envelope = app.dispatch("/riptide/Explode", b"{}")
    assert envelope == {"Body": {"ErrorMessage": "boom"}, "Status": int(Status.STATUS_INTERNAL)}


def test_unknown_path_is_not_found(app: App) -> None:
    status_code, envelope = app.dispatch("/riptide/Nope", b"{}")
    assert status_code == 404
    assert envelope == build_error(Status.STATUS_NOT_FOUND, "Not found")


def test_headers_are_case_insensitive() -> None:
    app = App("localhost:8000")
    Route(who_am_i).attach(app)
    _, envelope = app.dispatch("/riptide/WhoAmI", b"{}", {"X-Token": "abc"})
    assert envelope["Body"] == {"token": "abc"}

    ctx = RequestContext(headers={"Content-Type": "application/json"})
    assert ctx.get_header("content-type") == "application/json"
    assert ctx.get_header("missing") == ""


def test_to_wire_uses_wire_names_and_omits_empty() -> None:
    assert to_wire(SayHelloResponse(message="hi", trace="t")) == {"message": "hi", "mood": "happy", "trace": "t"}
    assert to_wire(Item(Name="x")) == {"name": "x"}


# ============================================================
# Middleware
# ============================================================

def test_middleware_runs_with_method_name() -> None:
    app = App("localhost:8000")
    recorder = MiddlewareRecorder()
    Route(say_hello).attach(app, recorder.middleware)

    _, envelope = app.dispatch("/riptide/SayHello", b'{"input_name": "Ada"}')
    assert envelope["Status"] == 0
    assert recorder.run_count == 1
    assert recorder.called_method_names == ["SayHello"]


def test_middleware_chaining() -> None:
    app = App("localhost:8000")
    recorder = MiddlewareRecorder()
    Route(say_hello).attach(app, recorder.middleware, recorder.middleware)

    app.dispatch("/riptide/SayHello", b'{"input_name": "Ada"}')
    assert recorder.run_count == 2


def test_middleware_runs_in_registration_order() -> None:
    calls: list[str] = []

    def first(ctx, request, method, handler):
        calls.append("first")
        return handler(ctx, request)

    def second(ctx, request, method, handler):
        calls.append("second")
        return handler(ctx, request)

    app = App("localhost:8000")
    Route(say_hello).attach(app, first, second)
    app.dispatch("/riptide/SayHello", b'{"input_name": "Ada"}')
    assert calls == ["first", "second"]


def test_middleware_runs_with_invalid_input() -> None:
    app = App("localhost:8000")
    recorder = MiddlewareRecorder()
    Route(say_hello).attach(app, recorder.middleware)

    _, envelope = app.dispatch("/riptide/SayHello", b'{ "invalid_key": "invalid_value" }')
    assert recorder.run_count == 1
    assert envelope["Status"] == Status.STATUS_INVALID_ARGUMENT


def test_middleware_can_short_circuit() -> None:
    def deny(ctx, request, method, handler):
        if not ctx.get_header("authorization"):
            return build_error(Status.STATUS_UNAUTHENTICATED, "no token")
        return handler(ctx, request)

    app = App("localhost:8000")
    Route(say_hello).attach(app, deny)

    _, envelope = app.dispatch("/riptide/SayHello", b'{"input_name": "Ada"}')
    assert envelope == {"Body": {"ErrorMessage": "no token"}, "Status": 16}

    _, envelope = app.dispatch("/riptide/SayHello", b'{"input_name": "Ada"}', {"Authorization": "Bearer x"})
    assert envelope["Status"] == 0


def test_middleware_exception_is_internal() -> None:
    def fail(ctx, request, method, handler):
        raise ValueError("middleware failed")

    app = App("localhost:8000")
    Route(say_hello).attach(app, fail)
    _, envelope = app.dispatch("/riptide/SayHello", b'{"input_name": "Ada"}')
    assert envelope["Status"] == Status.STATUS_INTERNAL
    assert "middleware failed" in envelope["Body"]["ErrorMessage"]


# ============================================================
# Code generation + route table
# ============================================================

def test_write_code(app: App, tmp_path) -> None:
    output_path = tmp_path / "client" / "api.ts"
    app.ts_output_location = str(output_path)
    app.add_app_constants({"Version": 1})

    assert app.write_code() == output_path
    code = output_path.read_text(encoding="utf-8")
    assert "export async function SayHello(params: SayHelloRequest" in code
    assert "export const AppConstants" in code


def test_write_code_skipped_without_location(app: App) -> None:
    assert app.write_code() is None


def test_write_code_leaves_file_untouched_on_error(tmp_path) -> None:
    output_path = tmp_path / "api.ts"
    output_path.write_text("previous", encoding="utf-8")

    app = App("localhost:8000", str(output_path))
    Route(broken).attach(app)
    with pytest.raises(UnresolvedFieldType):
        app.write_code()
    assert output_path.read_text(encoding="utf-8") == "previous"


def test_route_table_is_padded(app: App) -> None:
    Route(save_items).attach(app)
    assert app.route_table() == [
        "/riptide/SayHello \t [SayHelloRequest  -> SayHelloResponse ]",
        "/riptide/SaveItems\t [SaveItemsRequest -> SaveItemsResponse]",
    ]


def test_from_settings() -> None:
    settings = Settings(RIPTIDE_HOST="example.com:9000", RIPTIDE_TS_OUTPUT="out/api.ts", RIPTIDE_ENV="prod")
    app = App.from_settings(settings)
    assert app.host == "example.com:9000"
    assert app.ts_output_location == "out/api.ts"
    assert app.dev_reload is False


# ============================================================
# Static directories
# ============================================================

def test_static_dir_resolves_files_and_blocks_traversal(tmp_path) -> None:
    public = tmp_path / "public"
    public.mkdir()
    (public / "app.js").write_text("console.log(1)")
    (public / "index.html").write_text("<html></html>")
    (tmp_path / "secret.txt").write_text("secret")

    static_dir = StaticDir("/static", public)
    assert static_dir.resolve(["app.js"]) == (public / "app.js").resolve()
    assert static_dir.resolve([]) == (public / "index.html").resolve()
    assert static_dir.resolve(["..", "secret.txt"]) is None
    assert static_dir.resolve(["missing.js"]) is None
