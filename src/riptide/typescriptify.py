"""Generate TypeScript enums, interfaces/classes and functions from descriptors."""
from __future__ import annotations

import enum
import json
import logging
import typing as t
from dataclasses import dataclass, field

from riptide.descriptors import (
    TRANSFORM_PLACEHOLDER,
    EnumDescriptor,
    FieldDescriptor,
    FieldTags,
    FunctionDescriptor,
    Kind,
    TypeDescriptor,
    TypeOptions,
    TypeRef,
)
from riptide.errors import EmptyFunctionName, UnresolvedFieldType

logger = logging.getLogger(__name__)


# ============================================================
# Kind mapping
# ============================================================

KIND_TYPE_MAP: dict[Kind, str] = {
    Kind.BOOL: "boolean",
    Kind.INT: "number",
    Kind.FLOAT: "number",
    Kind.STRING: "string",
    Kind.ANY: "any",
}

CONVERT_VALUES_FUNCTION = """convertValues(a: any, classs: any, asMap: boolean = false): any {
\tif (!a) {
\t\treturn a;
\t}
\tif (a.slice) {
\t\treturn (a as any[]).map(elem => this.convertValues(elem, classs));
\t} else if ("object" === typeof a) {
\t\tif (asMap) {
\t\t\tfor (const key of Object.keys(a)) {
\t\t\t\ta[key] = new classs(a[key]);
\t\t\t}
\t\t\treturn a;
\t\t}
\t\treturn new classs(a);
\t}
\treturn a;
}"""


def indent_lines(text: str, depth: int, indent: str = "\t") -> str:
    """Indent every non-empty line of text by depth levels."""
    return "\n".join((indent * depth + line) if line else line for line in text.split("\n"))


def is_optional_field(tags: FieldTags, is_pointer: bool) -> bool:
    """
    A field is optional unless it is a non-pointer, not omit-if-empty and
    explicitly required. The ignore flag only guards the pointer term; ignored
    fields are dropped after this is computed.
    """
    return (not tags.ignore and is_pointer) or tags.omit_empty or not tags.required


def render_enum_value(value: t.Any) -> str:
    """Render a raw enum value as a TypeScript literal."""
    if isinstance(value, enum.Enum):
        value = value.value
    return json.dumps(value, default=str)


# ============================================================
# Class/interface body builder
# ============================================================

@dataclass
class TypeScriptClassBuilder:
    """Accumulates field lines and constructor initializers for one block."""
    kinds: dict[Kind, str]
    indent: str
    prefix: str = ""
    suffix: str = ""
    fields: list[str] = field(default_factory=list)
    constructor_body: list[str] = field(default_factory=list)

    def entity_name(self, type_name: str) -> str:
        return f"{self.prefix}{type_name}{self.suffix}"

    def add_field_definition_line(self, line: str) -> None:
        self.fields.append(f"{self.indent}{line}")

    def add_field(self, declared_name: str, typescript_type: str) -> None:
        self.fields.append(f"{self.indent}{declared_name}: {typescript_type};")

    def add_initializer_line(self, wire_name: str, initializer: str) -> None:
        self.constructor_body.append(f"{self.indent}{self.indent}this.{wire_name} = {initializer};")

    def add_simple_field(
        self,
        owner_name: str,
        field_name: str,
        declared_name: str,
        wire_name: str,
        type_ref: TypeRef,
        options: TypeOptions,
    ) -> None:
        """Primitive (or overridden) field with a copy or transform initializer."""
        typescript_type = options.ts_type or self.kinds.get(type_ref.kind, "")
        if not typescript_type:
            raise UnresolvedFieldType(owner_name, field_name, type_ref.name or type_ref.kind.value)

        self.add_field(declared_name, typescript_type)
        source_value = f'source["{wire_name}"]'
        if options.ts_transform:
            self.add_initializer_line(wire_name, options.ts_transform.replace(TRANSFORM_PLACEHOLDER, source_value))
        else:
            self.add_initializer_line(wire_name, source_value)

    def add_simple_array_field(
        self,
        owner_name: str,
        field_name: str,
        declared_name: str,
        wire_name: str,
        elem_ref: TypeRef,
        array_depth: int,
    ) -> None:
        """Array (of arrays) of primitives."""
        typescript_type = self.kinds.get(elem_ref.kind)
        if not typescript_type:
            raise UnresolvedFieldType(owner_name, field_name, elem_ref.name or elem_ref.kind.value)

        self.add_field(declared_name, typescript_type + "[]" * array_depth)
        self.add_initializer_line(wire_name, f'source["{wire_name}"]')

    def add_enum_field(self, declared_name: str, wire_name: str, enum_name: str, array_depth: int = 0) -> None:
        self.add_field(declared_name, self.entity_name(enum_name) + "[]" * array_depth)
        self.add_initializer_line(wire_name, f'source["{wire_name}"]')

    def add_struct_field(self, declared_name: str, wire_name: str, struct_name: str) -> None:
        entity_name = self.entity_name(struct_name)
        self.add_field(declared_name, entity_name)
        self.add_initializer_line(wire_name, f'this.convertValues(source["{wire_name}"], {entity_name})')

    def add_array_of_structs_field(self, declared_name: str, wire_name: str, struct_name: str, array_depth: int) -> None:
        entity_name = self.entity_name(struct_name)
        self.add_field(declared_name, entity_name + "[]" * array_depth)
        self.add_initializer_line(wire_name, f'this.convertValues(source["{wire_name}"], {entity_name})')

    def add_map_field(
        self,
        declared_name: str,
        wire_name: str,
        key_type: str,
        value_type: str,
        value_struct_name: str | None,
    ) -> None:
        """Indexed-type field; struct values are deep-converted per key."""
        self.add_field(declared_name, f"{{[key: {key_type}]: {value_type}}}")
        if value_struct_name is not None:
            entity_name = self.entity_name(value_struct_name)
            self.add_initializer_line(wire_name, f'this.convertValues(source["{wire_name}"], {entity_name}, true)')
        else:
            self.add_initializer_line(wire_name, f'source["{wire_name}"]')


# ============================================================
# Converter (registry + orchestrator)
# ============================================================

class TypeScriptify:
    """
    Registry of types, enums and functions, and the converter that turns them
    into one TypeScript source text.

    Output order is fixed: imports, enums, types, functions. Every type or
    enum identity is emitted at most once per convert() call, and nested types
    are emitted immediately before the first block that needs them.
    """

    def __init__(
        self,
        *,
        prefix: str = "",
        suffix: str = "",
        indent: str = "    ",
        create_constructor: bool = True,
        create_interface: bool = False,
        export: bool = True,
        quiet: bool = False,
    ) -> None:
        self.prefix = prefix
        self.suffix = suffix
        self.indent = indent
        self.create_constructor = create_constructor
        self.create_interface = create_interface
        self.export = export
        self.quiet = quiet

        self.kinds: dict[Kind, str] = dict(KIND_TYPE_MAP)
        self.custom_imports: list[str] = []
        self.struct_types: list[TypeDescriptor] = []
        self.enum_types: list[t.Any] = []
        self.enums: dict[t.Any, EnumDescriptor] = {}
        self.functions: list[FunctionDescriptor] = []
        self.field_type_options: dict[t.Any, TypeOptions] = {}

        # Emission memo, reset by convert()
        self._already_converted: set[t.Any] = set()

    # ---- registration

    def add_import(self, import_line: str) -> TypeScriptify:
        """Add a header line such as `import Decimal from 'decimal.js'`."""
        self.custom_imports.append(import_line)
        return self

    def add_type(
        self,
        source: type | TypeDescriptor,
        field_options: dict[t.Any, TypeOptions] | None = None,
    ) -> TypeScriptify:
        """Register a dataclass or TypeDescriptor. Duplicates are fine."""
        self.struct_types.append(TypeDescriptor.of(source, field_options=field_options))
        return self

    def add_enum(self, values: t.Any, *, name: str | None = None, source: t.Any = None) -> TypeScriptify:
        """Register an enum; a later registration of the same type replaces its elements."""
        enum_descriptor = EnumDescriptor.from_values(values, name=name, source=source)
        self.enums[enum_descriptor.identity] = enum_descriptor
        self.enum_types.append(enum_descriptor.identity)
        return self

    def add_function(self, function: FunctionDescriptor) -> TypeScriptify:
        self.functions.append(function)
        return self

    def add_field_type_options(self, python_type: t.Any, options: TypeOptions) -> TypeScriptify:
        """Override emission for every field of python_type, in every struct."""
        self.field_type_options[python_type] = options
        return self

    # ---- orchestration

    def convert(self, custom_code: dict[str, str] | None = None) -> str:
        """
        Emit every registered enum, type and function.

        custom_code maps an emitted entity name to extra code inserted at the
        end of its class body. Raises the first generator error; there is no
        partial result.
        """
        self._already_converted = set()
        depth = 0
        trim_chars = " " + self.indent + "\r\n"

        result = ""
        for import_line in self.custom_imports:
            result += import_line + "\n"

        for enum_identity in self.enum_types:
            typescript_code = self._convert_enum(depth, self.enums[enum_identity])
            if typescript_code:
                result += "\n" + typescript_code.strip(trim_chars) + "\n"

        for type_descriptor in self.struct_types:
            typescript_code = self._convert_type(depth, type_descriptor, custom_code)
            if typescript_code:
                result += "\n" + typescript_code.strip(trim_chars) + "\n"

        for function in self.functions:
            typescript_code = self._convert_function(depth, function)
            result += "\n" + typescript_code.strip(trim_chars) + "\n"

        return result

    def _log(self, depth: int, message: str, *args: t.Any) -> None:
        if not self.quiet:
            logger.debug("   " * depth + message, *args)

    # ---- functions

    def _convert_function(self, depth: int, function: FunctionDescriptor) -> str:
        self._log(depth, "Converting function %s", function.name)
        if not function.name:
            raise EmptyFunctionName()

        parameter_list = ", ".join(f"{parameter.name}: {parameter.type}" for parameter in function.parameters)
        async_marker = "async " if function.is_async else ""
        export_marker = "export " if function.export else ""
        return_type = function.return_type or "void"
        body_lines = "\n".join(indent_lines(line, 1) for line in function.body)

        return (
            f"{export_marker}{async_marker}function {function.name}({parameter_list}): {return_type} {{\n"
            f"{body_lines}\n"
            "}\n"
        )

    # ---- enums

    def _convert_enum(self, depth: int, enum_descriptor: EnumDescriptor) -> str:
        self._log(depth, "Converting enum %s", enum_descriptor.name)
        if enum_descriptor.identity in self._already_converted:
            return ""
        self._already_converted.add(enum_descriptor.identity)

        entity_name = f"{self.prefix}{enum_descriptor.name}{self.suffix}"
        result = f"enum {entity_name} {{\n"
        for element in enum_descriptor.elements:
            result += f"{self.indent}{element.ts_name} = {render_enum_value(element.value)},\n"
        result += "}"

        if self.export:
            result = "export " + result
        return result

    def _enum_for(self, type_ref: TypeRef) -> EnumDescriptor | None:
        """Registered enum for a type, or an on-demand one for enum.Enum classes."""
        registered = _lookup(self.enums, type_ref.identity)
        if registered is not None:
            return registered
        if type_ref.kind is Kind.ENUM:
            return EnumDescriptor.from_values(type_ref.source)
        return None

    # ---- field options

    def _field_options(self, type_descriptor: TypeDescriptor, field_descriptor: FieldDescriptor, type_ref: TypeRef) -> TypeOptions:
        """Tag options, overridden by per-struct then global per-type options."""
        tags = field_descriptor.tags
        ts_type = tags.ts_type
        ts_transform = tags.ts_transform

        overrides: list[TypeOptions] = []
        struct_overrides = _lookup(type_descriptor.field_options, type_ref.source)
        if struct_overrides is not None:
            overrides.append(struct_overrides)
        for registered in self.struct_types:
            if registered is type_descriptor or registered.identity is not type_descriptor.identity:
                continue
            registered_overrides = _lookup(registered.field_options, type_ref.source)
            if registered_overrides is not None:
                overrides.append(registered_overrides)
        global_overrides = _lookup(self.field_type_options, type_ref.source)
        if global_overrides is not None:
            overrides.append(global_overrides)

        for override in overrides:
            if override.ts_transform:
                ts_transform = override.ts_transform
            if override.ts_type:
                ts_type = override.ts_type

        return TypeOptions(ts_type=ts_type, ts_transform=ts_transform, ts_doc=tags.ts_doc)

    # ---- types

    def _prepend_dependency(self, result: str, chunk: str) -> str:
        if chunk:
            return chunk + "\n" + result
        return result

    def _convert_named_dependencies(
        self,
        depth: int,
        type_ref: TypeRef,
        result: str,
        custom_code: dict[str, str] | None,
    ) -> str:
        """Convert every struct/enum reachable through pointers, slices and maps."""
        if type_ref.kind is Kind.POINTER and type_ref.elem is not None:
            return self._convert_named_dependencies(depth, type_ref.elem, result, custom_code)
        if type_ref.kind is Kind.SLICE and type_ref.elem is not None:
            return self._convert_named_dependencies(depth, type_ref.elem, result, custom_code)
        if type_ref.kind is Kind.MAP:
            if type_ref.key is not None:
                result = self._convert_named_dependencies(depth, type_ref.key, result, custom_code)
            if type_ref.value is not None:
                result = self._convert_named_dependencies(depth, type_ref.value, result, custom_code)
            return result
        if type_ref.kind is Kind.STRUCT and type_ref.struct is not None:
            return self._prepend_dependency(result, self._convert_type(depth, type_ref.struct, custom_code))

        enum_descriptor = self._enum_for(type_ref)
        if enum_descriptor is not None:
            return self._prepend_dependency(result, self._convert_enum(depth, enum_descriptor))
        return result

    def _render_type_ref(self, owner_name: str, field_name: str, type_ref: TypeRef) -> str:
        """TypeScript type expression for a map key or value."""
        if type_ref.kind is Kind.POINTER and type_ref.elem is not None:
            return self._render_type_ref(owner_name, field_name, type_ref.elem)
        if type_ref.kind is Kind.STRUCT and type_ref.struct is not None:
            return f"{self.prefix}{type_ref.struct.name}{self.suffix}"

        enum_descriptor = self._enum_for(type_ref)
        if enum_descriptor is not None:
            return f"{self.prefix}{enum_descriptor.name}{self.suffix}"

        if type_ref.kind is Kind.SLICE and type_ref.elem is not None:
            return self._render_type_ref(owner_name, field_name, type_ref.elem) + "[]"
        if type_ref.kind is Kind.MAP and type_ref.key is not None and type_ref.value is not None:
            key_type = self._render_type_ref(owner_name, field_name, type_ref.key)
            value_type = self._render_type_ref(owner_name, field_name, type_ref.value)
            return f"{{[key: {key_type}]: {value_type}}}"

        typescript_type = self.kinds.get(type_ref.kind)
        if not typescript_type:
            raise UnresolvedFieldType(owner_name, field_name, type_ref.name or type_ref.kind.value)
        return typescript_type

    def _convert_type(
        self,
        depth: int,
        type_descriptor: TypeDescriptor,
        custom_code: dict[str, str] | None,
    ) -> str:
        if type_descriptor.identity in self._already_converted:
            return ""
        self._log(depth, "Converting type %s", type_descriptor.name)

        # Mark before recursing so self-referential types terminate.
        self._already_converted.add(type_descriptor.identity)

        entity_name = f"{self.prefix}{type_descriptor.name}{self.suffix}"
        keyword = "interface" if self.create_interface else "class"
        result = f"{keyword} {entity_name} {{\n"
        if self.export:
            result = "export " + result

        builder = TypeScriptClassBuilder(
            kinds=self.kinds,
            indent=self.indent,
            prefix=self.prefix,
            suffix=self.suffix,
        )
        owner_name = type_descriptor.name

        for field_descriptor in type_descriptor.fields:
            type_ref = field_descriptor.type
            is_pointer = type_ref.kind is Kind.POINTER
            if is_pointer and type_ref.elem is not None:
                type_ref = type_ref.elem

            tags = field_descriptor.tags
            optional = is_optional_field(tags, is_pointer)
            if tags.ignore:
                continue

            wire_name = tags.wire_name or field_descriptor.name
            declared_name = f"{wire_name}?" if optional else wire_name
            field_name = field_descriptor.name

            options = self._field_options(type_descriptor, field_descriptor, type_ref)
            if options.ts_doc:
                builder.add_field_definition_line(f"/** {options.ts_doc} */")

            if options.ts_transform:
                self._log(depth, "- simple field %s.%s", owner_name, field_name)
                builder.add_simple_field(owner_name, field_name, declared_name, wire_name, type_ref, options)
                continue

            enum_descriptor = self._enum_for(type_ref)
            if enum_descriptor is not None:
                self._log(depth, "- enum field %s.%s", owner_name, field_name)
                result = self._prepend_dependency(result, self._convert_enum(depth + 1, enum_descriptor))
                builder.add_enum_field(declared_name, wire_name, enum_descriptor.name)
                continue

            if options.ts_type:
                self._log(depth, "- simple field %s.%s", owner_name, field_name)
                builder.add_simple_field(owner_name, field_name, declared_name, wire_name, type_ref, options)
                continue

            if type_ref.kind is Kind.STRUCT and type_ref.struct is not None:
                self._log(depth, "- struct %s.%s (%s)", owner_name, field_name, type_ref.struct.name)
                chunk = self._convert_type(depth + 1, type_ref.struct, custom_code)
                result = self._prepend_dependency(result, chunk)
                builder.add_struct_field(declared_name, wire_name, type_ref.struct.name)

            elif type_ref.kind is Kind.MAP and type_ref.key is not None and type_ref.value is not None:
                self._log(depth, "- map field %s.%s", owner_name, field_name)
                result = self._convert_named_dependencies(depth + 1, type_ref.key, result, custom_code)
                result = self._convert_named_dependencies(depth + 1, type_ref.value, result, custom_code)

                value_ref = type_ref.value
                if value_ref.kind is Kind.POINTER and value_ref.elem is not None:
                    value_ref = value_ref.elem
                value_struct_name = value_ref.struct.name if value_ref.kind is Kind.STRUCT and value_ref.struct else None

                builder.add_map_field(
                    declared_name,
                    wire_name,
                    self._render_type_ref(owner_name, field_name, type_ref.key),
                    self._render_type_ref(owner_name, field_name, type_ref.value),
                    value_struct_name,
                )

            elif type_ref.kind is Kind.SLICE and type_ref.elem is not None:
                elem_ref = _unwrap_pointer(type_ref.elem)
                array_depth = 1
                while elem_ref.kind is Kind.SLICE and elem_ref.elem is not None:
                    elem_ref = _unwrap_pointer(elem_ref.elem)
                    array_depth += 1

                elem_enum = self._enum_for(elem_ref)
                if elem_ref.kind is Kind.STRUCT and elem_ref.struct is not None:
                    self._log(depth, "- struct slice %s.%s (%s)", owner_name, field_name, elem_ref.struct.name)
                    chunk = self._convert_type(depth + 1, elem_ref.struct, custom_code)
                    result = self._prepend_dependency(result, chunk)
                    builder.add_array_of_structs_field(declared_name, wire_name, elem_ref.struct.name, array_depth)
                elif elem_enum is not None:
                    self._log(depth, "- enum slice %s.%s", owner_name, field_name)
                    result = self._prepend_dependency(result, self._convert_enum(depth + 1, elem_enum))
                    builder.add_enum_field(declared_name, wire_name, elem_enum.name, array_depth)
                else:
                    self._log(depth, "- slice field %s.%s", owner_name, field_name)
                    builder.add_simple_array_field(
                        owner_name, field_name, declared_name, wire_name, elem_ref, array_depth
                    )

            else:
                self._log(depth, "- simple field %s.%s", owner_name, field_name)
                builder.add_simple_field(owner_name, field_name, declared_name, wire_name, type_ref, options)

        result += "\n".join(builder.fields) + "\n"
        if not self.create_interface and self.create_constructor:
            constructor_body = "\n".join(builder.constructor_body)
            needs_convert_values = "this.convertValues" in constructor_body

            result += f"\n{self.indent}constructor(source: any = {{}}) {{\n"
            result += f"{self.indent}{self.indent}if ('string' === typeof source) source = JSON.parse(source);\n"
            if constructor_body:
                result += constructor_body + "\n"
            result += f"{self.indent}}}\n"

            if needs_convert_values:
                helper = CONVERT_VALUES_FUNCTION.replace("\t", self.indent)
                result += "\n" + indent_lines(helper, 1, self.indent) + "\n"

        if custom_code:
            code = custom_code.get(entity_name)
            if code:
                result += f"{self.indent}//[{entity_name}:]\n{code}\n\n{self.indent}//[end]\n"

        result += "}"
        return result


def _unwrap_pointer(type_ref: TypeRef) -> TypeRef:
    if type_ref.kind is Kind.POINTER and type_ref.elem is not None:
        return type_ref.elem
    return type_ref


def _lookup(options_by_type: dict[t.Any, t.Any], key: t.Any) -> t.Any:
    """dict.get that tolerates unhashable type expressions."""
    if key is None or not options_by_type:
        return None
    try:
        return options_by_type.get(key)
    except TypeError:
        return None
