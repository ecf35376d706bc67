"""Exception types raised by the generator and the route layer."""
from __future__ import annotations


class RiptideError(Exception):
    """Base class for every riptide error."""


# ============================================================
# Generator errors (fatal for the whole generation pass)
# ============================================================

class GeneratorError(RiptideError):
    """A schema defect found while emitting TypeScript."""


class UnresolvedFieldType(GeneratorError):
    """No kind mapping, structural path or override exists for a field."""

    def __init__(self, type_name: str, field_name: str, kind: str = "") -> None:
        self.type_name = type_name
        self.field_name = field_name
        self.kind = kind
        detail = f" ({kind})" if kind else ""
        super().__init__(f"cannot find type for {type_name}.{field_name}{detail}")


class InvalidEnumSource(GeneratorError):
    """Enum values were not given as a non-empty sequence."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"invalid enum source: {detail}")


class MissingEnumName(GeneratorError):
    """An enum element exposes no display name."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"enum element has no name: {detail}")


class EmptyFunctionName(GeneratorError):
    """A function descriptor was registered without a name."""

    def __init__(self) -> None:
        super().__init__("function has an empty name")


# ============================================================
# Route errors (raised while declaring the app, before serving)
# ============================================================

class RouteError(RiptideError):
    """A route declaration that cannot be attached."""


class DuplicateRoute(RouteError):
    def __init__(self, fn_name: str, path: str) -> None:
        self.fn_name = fn_name
        self.path = path
        super().__init__(f"Duplicate handler for route: {fn_name} ({path})")


class InvalidRouteSignature(RouteError):
    """Handler request/response types do not follow the naming pattern."""


class HeaderTypeAlreadySet(RiptideError):
    def __init__(self) -> None:
        super().__init__("Header type already set")
