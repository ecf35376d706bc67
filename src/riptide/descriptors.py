"""Language-neutral descriptors for the types, enums and functions to emit.

Descriptors are built once, either by introspecting dataclasses and enum
classes or by declaring them by hand, and are consumed by the generator.
"""
from __future__ import annotations

import collections.abc
import dataclasses
import enum
import types
import typing as t
from dataclasses import dataclass, field

from riptide.errors import InvalidEnumSource, MissingEnumName


TAGS_METADATA_KEY = "riptide"
TRANSFORM_PLACEHOLDER = "__VALUE__"

# Dataclass field metadata keys understood as classic string tags.
JSON_TAG = "json"
VALIDATE_TAG = "validate"
TS_TYPE_TAG = "ts_type"
TS_TRANSFORM_TAG = "ts_transform"
TS_DOC_TAG = "ts_doc"


class Kind(enum.Enum):
    """Structural kind of a type expression."""
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    ANY = "any"
    STRUCT = "struct"
    ENUM = "enum"
    MAP = "map"
    SLICE = "slice"
    POINTER = "pointer"
    OTHER = "other"


# ============================================================
# Field tags + per-type overrides
# ============================================================

@dataclass(frozen=True)
class FieldTags:
    """Structured presence/override record for one field."""
    wire_name: str | None = None
    omit_empty: bool = False
    ignore: bool = False
    required: bool = False
    ts_type: str = ""
    ts_transform: str = ""
    ts_doc: str = ""


@dataclass(frozen=True)
class TypeOptions:
    """Overrides applied to every field of a given type."""
    ts_type: str = ""
    ts_transform: str = ""
    ts_doc: str = ""


def parse_tags(
    json: str = "",
    validate: str = "",
    *,
    ts_type: str = "",
    ts_transform: str = "",
    ts_doc: str = "",
) -> FieldTags:
    """
    Parse classic string tags into a FieldTags record.

      json="input_name"            -> wire name override
      json="name,omitempty"        -> wire name + omit when empty
      json="-"                     -> ignore the field
      validate="required,min=1"    -> required
    """
    wire_name: str | None = None
    omit_empty = False
    ignore = False

    if json:
        json_parts = [part.strip() for part in json.split(",")]
        if json_parts[0] == "-" and len(json_parts) == 1:
            ignore = True
        elif json_parts[0]:
            wire_name = json_parts[0]
        omit_empty = "omitempty" in json_parts[1:]

    required = False
    if validate:
        required = "required" in (part.strip() for part in validate.split(","))

    return FieldTags(
        wire_name=wire_name,
        omit_empty=omit_empty,
        ignore=ignore,
        required=required,
        ts_type=ts_type,
        ts_transform=ts_transform,
        ts_doc=ts_doc,
    )


def wire(
    name: str | None = None,
    *,
    omit_empty: bool = False,
    ignore: bool = False,
    required: bool = False,
    ts_type: str = "",
    ts_transform: str = "",
    ts_doc: str = "",
    **field_kwargs: t.Any,
) -> t.Any:
    """
    dataclasses.field() carrying a FieldTags record.

      @dataclass
      class SayHelloRequest:
          name: str = wire("input_name", required=True)
    """
    metadata = dict(field_kwargs.pop("metadata", None) or {})
    metadata[TAGS_METADATA_KEY] = FieldTags(
        wire_name=name,
        omit_empty=omit_empty,
        ignore=ignore,
        required=required,
        ts_type=ts_type,
        ts_transform=ts_transform,
        ts_doc=ts_doc,
    )
    return dataclasses.field(metadata=metadata, **field_kwargs)


def tags_for_field(dataclass_field: dataclasses.Field) -> FieldTags:
    """Return the tag record declared on a dataclass field."""
    metadata = dataclass_field.metadata
    declared = metadata.get(TAGS_METADATA_KEY)
    if isinstance(declared, FieldTags):
        return declared

    string_tag_keys = (JSON_TAG, VALIDATE_TAG, TS_TYPE_TAG, TS_TRANSFORM_TAG, TS_DOC_TAG)
    if any(key in metadata for key in string_tag_keys):
        return parse_tags(
            metadata.get(JSON_TAG, ""),
            metadata.get(VALIDATE_TAG, ""),
            ts_type=metadata.get(TS_TYPE_TAG, ""),
            ts_transform=metadata.get(TS_TRANSFORM_TAG, ""),
            ts_doc=metadata.get(TS_DOC_TAG, ""),
        )
    return FieldTags()


# ============================================================
# Type references + composite descriptors
# ============================================================

_SEQUENCE_ORIGINS = (
    list,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
    collections.abc.Collection,
    collections.abc.Iterable,
)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)

_PRIMITIVE_KINDS: dict[t.Any, Kind] = {
    bool: Kind.BOOL,
    int: Kind.INT,
    float: Kind.FLOAT,
    str: Kind.STRING,
    object: Kind.ANY,
}


@dataclass(eq=False)
class TypeRef:
    """A type expression: a primitive, a named type or a container of them."""
    kind: Kind
    source: t.Any = None
    name: str = ""
    elem: TypeRef | None = None
    key: TypeRef | None = None
    value: TypeRef | None = None
    struct: TypeDescriptor | None = None

    @property
    def identity(self) -> t.Any:
        """Identity used to match registered enums and emitted structs."""
        if self.struct is not None:
            return self.struct.identity
        return self.source

    @classmethod
    def primitive(cls, kind: Kind) -> TypeRef:
        return cls(kind=kind, name=kind.value)

    @classmethod
    def pointer_to(cls, elem: TypeRef) -> TypeRef:
        return cls(kind=Kind.POINTER, name=f"*{elem.name}", elem=elem)

    @classmethod
    def slice_of(cls, elem: TypeRef) -> TypeRef:
        return cls(kind=Kind.SLICE, name=f"[]{elem.name}", elem=elem)

    @classmethod
    def map_of(cls, key: TypeRef, value: TypeRef) -> TypeRef:
        return cls(kind=Kind.MAP, name=f"map[{key.name}]{value.name}", key=key, value=value)

    @classmethod
    def struct_of(cls, descriptor: TypeDescriptor) -> TypeRef:
        return cls(kind=Kind.STRUCT, source=descriptor.source, name=descriptor.name, struct=descriptor)


@dataclass(eq=False)
class FieldDescriptor:
    """One field of a composite type."""
    name: str
    type: TypeRef
    tags: FieldTags = field(default_factory=FieldTags)


class TypeDescriptor:
    """
    A named composite type and its ordered fields.

    Identity is the underlying class when there is one, so two descriptors of
    the same dataclass converge to one emission. Fields of a class-backed
    descriptor are resolved on first access, which lets self-referential
    classes be described.
    """

    def __init__(
        self,
        name: str,
        fields: t.Iterable[FieldDescriptor] | None = None,
        *,
        source: type | None = None,
        field_options: dict[t.Any, TypeOptions] | None = None,
    ) -> None:
        self.name = name
        self.source = source
        self.field_options: dict[t.Any, TypeOptions] = dict(field_options or {})
        self._fields: list[FieldDescriptor] | None = list(fields) if fields is not None else None
        self._identity: t.Any = None

    @classmethod
    def of(
        cls,
        source: type | TypeDescriptor,
        *,
        field_options: dict[t.Any, TypeOptions] | None = None,
    ) -> TypeDescriptor:
        """Return a descriptor for a dataclass (or pass a descriptor through)."""
        if isinstance(source, TypeDescriptor):
            return source.with_field_options(field_options) if field_options else source
        if not (isinstance(source, type) and dataclasses.is_dataclass(source)):
            raise TypeError(f"{source!r} is not a dataclass")
        return cls(source.__name__, source=source, field_options=field_options)

    def with_field_options(self, field_options: dict[t.Any, TypeOptions]) -> TypeDescriptor:
        """Copy with extra per-type options. The copy keeps this identity."""
        merged = TypeDescriptor(
            self.name,
            self._fields,
            source=self.source,
            field_options={**self.field_options, **field_options},
        )
        merged._identity = self.identity
        return merged

    @property
    def identity(self) -> t.Any:
        if self._identity is not None:
            return self._identity
        return self.source if self.source is not None else self

    @property
    def fields(self) -> list[FieldDescriptor]:
        if self._fields is None:
            self._fields = describe_fields(self.source) if self.source is not None else []
        return self._fields

    def __repr__(self) -> str:
        return f"TypeDescriptor({self.name!r})"


def describe_type(python_type: t.Any) -> TypeRef:
    """Translate a Python annotation into a TypeRef."""
    if python_type is t.Any:
        return TypeRef(kind=Kind.ANY, source=python_type, name="any")

    origin = t.get_origin(python_type)
    args = t.get_args(python_type)

    if origin is t.Annotated:
        return describe_type(args[0])

    # Optional[T] / T | None
    if origin is t.Union or origin is types.UnionType:
        non_none_args = [arg for arg in args if arg is not type(None)]
        if len(non_none_args) == 1 and len(args) == 2:
            return TypeRef.pointer_to(describe_type(non_none_args[0]))
        return TypeRef(kind=Kind.OTHER, source=python_type, name=str(python_type))

    # Generics first: list[int] and friends can pass isinstance(x, type) checks.
    if origin is not None:
        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return TypeRef(kind=Kind.SLICE, source=python_type, name=str(python_type), elem=describe_type(args[0]))
            return TypeRef(kind=Kind.OTHER, source=python_type, name=str(python_type))

        if origin in _SEQUENCE_ORIGINS:
            elem_type = describe_type(args[0]) if args else TypeRef(kind=Kind.ANY, name="any")
            return TypeRef(kind=Kind.SLICE, source=python_type, name=str(python_type), elem=elem_type)

        if origin in _MAPPING_ORIGINS:
            key_type = describe_type(args[0]) if len(args) > 0 else describe_type(str)
            value_type = describe_type(args[1]) if len(args) > 1 else TypeRef(kind=Kind.ANY, name="any")
            return TypeRef(kind=Kind.MAP, source=python_type, name=str(python_type), key=key_type, value=value_type)

        return TypeRef(kind=Kind.OTHER, source=python_type, name=str(python_type))

    if not isinstance(python_type, type):
        return TypeRef(kind=Kind.OTHER, source=python_type, name=repr(python_type))

    if issubclass(python_type, enum.Enum):
        return TypeRef(kind=Kind.ENUM, source=python_type, name=python_type.__name__)

    primitive_kind = _PRIMITIVE_KINDS.get(python_type)
    if primitive_kind is not None:
        return TypeRef(kind=primitive_kind, source=python_type, name=python_type.__name__)

    if python_type in (list, set, frozenset, tuple):
        return TypeRef(
            kind=Kind.SLICE,
            source=python_type,
            name=python_type.__name__,
            elem=TypeRef(kind=Kind.ANY, name="any"),
        )

    if python_type is dict:
        return TypeRef(
            kind=Kind.MAP,
            source=python_type,
            name="dict",
            key=describe_type(str),
            value=TypeRef(kind=Kind.ANY, name="any"),
        )

    if dataclasses.is_dataclass(python_type):
        return TypeRef.struct_of(TypeDescriptor.of(python_type))

    return TypeRef(kind=Kind.OTHER, source=python_type, name=python_type.__name__)


def describe_fields(dataclass_type: type) -> list[FieldDescriptor]:
    """Describe dataclass fields, inherited fields first."""
    type_hints = t.get_type_hints(dataclass_type)
    return [
        FieldDescriptor(
            name=dataclass_field.name,
            type=describe_type(type_hints.get(dataclass_field.name, dataclass_field.type)),
            tags=tags_for_field(dataclass_field),
        )
        for dataclass_field in dataclasses.fields(dataclass_type)
    ]


# ============================================================
# Enums
# ============================================================

@dataclass(frozen=True)
class EnumElement:
    """A (raw value, display name) pair."""
    value: t.Any
    ts_name: str


@dataclass(eq=False)
class EnumDescriptor:
    """An ordered enumeration. Element order is emitted verbatim."""
    name: str
    identity: t.Any
    elements: list[EnumElement]

    @classmethod
    def from_values(
        cls,
        values: t.Any,
        *,
        name: str | None = None,
        source: t.Any = None,
    ) -> EnumDescriptor:
        """
        Accepts:
          an enum.Enum class
          a list of enum members
          a list of EnumElement or (value, name) pairs
          a list of objects exposing ts_name()
        """
        if isinstance(values, type) and issubclass(values, enum.Enum):
            if source is None:
                source = values
            if name is None:
                name = values.__name__
            values = list(values)

        if isinstance(values, (str, bytes, collections.abc.Mapping)) or not isinstance(
            values, collections.abc.Sequence
        ):
            raise InvalidEnumSource(f"values for {type(values).__name__} isn't a sequence")
        if not values:
            raise InvalidEnumSource("no values given")

        elements = [_enum_element(item) for item in values]

        first_value = elements[0].value
        if source is None and isinstance(first_value, enum.Enum):
            source = type(first_value)
        if name is None:
            name = source.__name__ if isinstance(source, type) else type(first_value).__name__

        descriptor = cls(name=name, identity=source, elements=elements)
        if source is None:
            descriptor.identity = descriptor
        return descriptor


def _enum_element(item: t.Any) -> EnumElement:
    """Extract the (value, name) pair from one enum source item."""
    if isinstance(item, EnumElement):
        return item
    if isinstance(item, tuple):
        if len(item) != 2 or not isinstance(item[1], str):
            raise MissingEnumName(f"{item!r} is not a (value, name) pair")
        return EnumElement(value=item[0], ts_name=item[1])

    ts_namer = getattr(item, "ts_name", None)
    if callable(ts_namer):
        return EnumElement(value=item, ts_name=ts_namer())
    if isinstance(item, enum.Enum):
        return EnumElement(value=item, ts_name=item.name)

    raise MissingEnumName(f"{type(item).__name__} has no ts_name method")


# ============================================================
# Functions
# ============================================================

@dataclass(frozen=True)
class FunctionParameter:
    name: str
    type: str


@dataclass
class FunctionDescriptor:
    """A TypeScript function; body lines are opaque text."""
    name: str
    parameters: list[FunctionParameter] = field(default_factory=list)
    return_type: str = ""
    body: list[str] = field(default_factory=list)
    is_async: bool = False
    export: bool = True
