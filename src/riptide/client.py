"""
Build the TypeScript client for a set of routes.

The client is one file: the Status enum, every request/response type, one
exported async call wrapper per route, the shared `genFunc` POST helper,
`isError`, and the envelope interfaces every wrapper returns.
"""
from __future__ import annotations

import dataclasses
import json
import typing as t

from riptide.descriptors import FunctionDescriptor, FunctionParameter, TypeDescriptor
from riptide.status import Status
from riptide.typescriptify import TypeScriptify


DEFAULT_HEADER_TYPE = "HeadersInit"

ENVELOPE_DECLARATIONS = (
    "export interface Response<T> { Body: T; Status: Status; Headers: Headers; }\n"
    "export interface Error { Message: String; IsError: boolean; Status: Status; }\n"
    "export interface ErrorRes { ErrorMessage: String }\n"
)


class ClientRoute(t.Protocol):
    """What the generator needs from a route."""
    fn_name: str
    path: str
    request_type: t.Any
    response_type: t.Any


def build_convert_headers_function(header_type_name: str) -> FunctionDescriptor:
    """`convertHeaders` flattens a typed header object into fetch headers."""
    return FunctionDescriptor(
        name="convertHeaders",
        parameters=[FunctionParameter("headers?", header_type_name)],
        return_type="Record<string, string>",
        body=[
            "let r: Record<string, string> = {};",
            "if (headers === undefined) { return r; }",
            "",
            "Object.keys(headers).forEach((key) => {",
            f"\tconst v = headers[key as keyof {header_type_name}]",
            "\tif( v !== undefined) { r[key] = v; }",
            "})",
            "return r",
        ],
    )


def build_gen_func(header_type_name: str, host: str, convert_headers: bool) -> FunctionDescriptor:
    """
    The unexported request helper every call wrapper delegates to.

    Network failures and non-JSON bodies become an Error with
    STATUS_UNAVAILABLE. An application error (a body carrying
    Body.ErrorMessage) is detected before the success branch.
    """
    header_expression = "convertHeaders(headers)" if convert_headers else "headers"
    unavailable = Status.STATUS_UNAVAILABLE.name

    return FunctionDescriptor(
        name="genFunc<T, K>",
        is_async=True,
        export=False,
        parameters=[
            FunctionParameter("params", "T"),
            FunctionParameter("path", "string"),
            FunctionParameter("headers?", header_type_name),
        ],
        return_type="Promise<Error | Response<K>>",
        body=[
            'const requestOptions: RequestInit = { method: "POST" };',
            "requestOptions.body = JSON.stringify(params as T);",
            f"requestOptions.headers = {header_expression};",
            "",
            f'const host = "http://{host}";',
            "const url = host + path;",
            "let res;",
            "try { res = await fetch(url, requestOptions); }",
            "catch (e) {",
            f'\treturn {{ Message: "Likely network error: " + e, Status: Status.{unavailable}, IsError: true }} as Error;',
            "}",
            "let body;",
            "try { body = await res.json(); }",
            "catch (e) {",
            "\t// couldn't cast to JSON",
            f"\treturn {{ Message: e, Status: Status.{unavailable}, IsError: true }} as Error;",
            "}",
            "// Check if it's an application error and try build into an Error response",
            'let innerBody = body["Body"];',
            'if (innerBody !== undefined && innerBody["ErrorMessage"] !== undefined) {',
            "\ttry {",
            "\t\tlet r = body as Response<ErrorRes>;",
            "\t\treturn { Message: r.Body.ErrorMessage, Status: r.Status, IsError: true } as Error;",
            "\t} catch (e) {",
            f"\t\treturn {{ Message: e, Status: Status.{unavailable}, IsError: true }} as Error",
            "\t}",
            "}",
            "try {",
            "\tlet r = body as Response<K>;",
            "\treturn r;",
            "} catch (e) {",
            f"\treturn {{ Message: e, Status: Status.{unavailable}, IsError: true }} as Error",
            "}",
        ],
    )


def build_is_error_function() -> FunctionDescriptor:
    return FunctionDescriptor(
        name="isError",
        parameters=[FunctionParameter("possibleError", "Error | Response<any>")],
        return_type="possibleError is Error",
        body=["return (possibleError as Error).IsError !== undefined;"],
    )


def build_call_wrapper(route: ClientRoute, header_type_name: str) -> FunctionDescriptor:
    request_name = TypeDescriptor.of(route.request_type).name
    response_name = TypeDescriptor.of(route.response_type).name
    return FunctionDescriptor(
        name=route.fn_name,
        is_async=True,
        parameters=[
            FunctionParameter("params", request_name),
            FunctionParameter("headers?", header_type_name),
        ],
        return_type=f"Promise<Response<{response_name}> | Error>",
        body=[f'return genFunc<{request_name}, {response_name}>(params, "{route.path}", headers);'],
    )


def generate_client(
    routes: t.Iterable[ClientRoute],
    host: str,
    header_type: t.Any = None,
    app_constants: t.Any = None,
    quiet: bool = True,
) -> str:
    """
    Return the complete client source text.

    Raises the converter's GeneratorError on a bad schema; nothing is
    returned in that case.
    """
    converter = TypeScriptify(create_interface=True, export=True, quiet=quiet)

    header_type_name = DEFAULT_HEADER_TYPE
    if header_type is not None:
        converter.add_type(header_type)
        header_type_name = TypeDescriptor.of(header_type).name
        converter.add_function(build_convert_headers_function(header_type_name))

    for route in routes:
        converter.add_type(route.request_type)
        converter.add_type(route.response_type)
        converter.add_function(build_call_wrapper(route, header_type_name))

    converter.add_function(build_gen_func(header_type_name, host, header_type is not None))
    converter.add_function(build_is_error_function())
    converter.add_enum(Status)

    code = converter.convert()

    code += "\n"
    code += ENVELOPE_DECLARATIONS

    if app_constants is not None:
        code += f"\nexport const AppConstants = {json.dumps(app_constants, indent=2, default=_jsonable)};\n"

    return code


def _jsonable(value: t.Any) -> t.Any:
    """json.dumps fallback for dataclass and pydantic constants."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        return model_dump(mode="json")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")
