from riptide.app import App, RequestContext, Route, RouteContainer
from riptide.client import generate_client
from riptide.descriptors import (
    EnumElement,
    FieldDescriptor,
    FunctionDescriptor,
    FunctionParameter,
    Kind,
    TypeDescriptor,
    TypeOptions,
    TypeRef,
    parse_tags,
    wire,
)
from riptide.errors import (
    DuplicateRoute,
    EmptyFunctionName,
    GeneratorError,
    HeaderTypeAlreadySet,
    InvalidEnumSource,
    InvalidRouteSignature,
    MissingEnumName,
    RiptideError,
    UnresolvedFieldType,
)
from riptide.status import Status
from riptide.typescriptify import TypeScriptify

__all__ = [
    "App",
    "DuplicateRoute",
    "EmptyFunctionName",
    "EnumElement",
    "FieldDescriptor",
    "FunctionDescriptor",
    "FunctionParameter",
    "GeneratorError",
    "HeaderTypeAlreadySet",
    "InvalidEnumSource",
    "InvalidRouteSignature",
    "Kind",
    "MissingEnumName",
    "RequestContext",
    "RiptideError",
    "Route",
    "RouteContainer",
    "Status",
    "TypeDescriptor",
    "TypeOptions",
    "TypeRef",
    "TypeScriptify",
    "UnresolvedFieldType",
    "generate_client",
    "parse_tags",
    "wire",
]
