"""Vulkan registry metadata extractor for Mojo autogen.

Loads the Khronos vk.xml registry into an immutable typed model, resolves
type aliases, orders features and extensions, and records which capabilities
require each type. Four emitters turn those models into one Mojo source file.

Usage:
    python vkautogen.py --vk-xml Vulkan-Docs/xml/vk.xml --output vk_autogen.mojo
"""

import argparse
import io
import re
import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import ClassVar, TextIO, TypeVar

DEFAULT_VK_XML = Path("vk.xml")
DEFAULT_OUTPUT = Path("vk_autogen.mojo")
DEFAULT_PLATFORM = "vulkan"
HEADER_VERSION_MARKER = "VK_HEADER_VERSION"


# ===--- Error contracts ---=== #


VALID_ERROR_CODES = {
    "MISSING_DOCUMENT",
    "UNPARSABLE_DOCUMENT",
    "MISSING_HEADER_VERSION",
    "MALFORMED_HEADER_VERSION",
    "INVALID_PLATFORM",
}


class ConfigurationError(Exception):
    """Fatal condition that makes the generated output untrustworthy.

    The code names the violated invariant so a failed build can be diagnosed
    from the message alone.
    """

    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown configuration error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


# ===--- Registry model ---=== #


class NodeKind(Enum):
    TYPES = "types"
    FEATURE = "feature"
    EXTENSIONS = "extensions"
    OTHER = "other"


@dataclass(frozen=True)
class CodeMarkup:
    """One tagged inline element of a type's code, e.g. ("name", "VkInstance")."""

    kind: str
    text: str


@dataclass(frozen=True)
class CodeSpec:
    """Free-form declaration text (defines, handles, base types, ...)."""

    code: str
    markup: tuple[CodeMarkup, ...] = ()

    @property
    def members(self) -> tuple["TypeMember", ...]:
        return ()

    def has_markup_name(self, name: str) -> bool:
        return any(m.kind == "name" and m.text == name for m in self.markup)


@dataclass(frozen=True)
class TypeMember:
    name: str
    type_name: str
    code: str


@dataclass(frozen=True)
class MembersSpec:
    """Structural layout of a struct or union."""

    members: tuple[TypeMember, ...]

    def has_markup_name(self, name: str) -> bool:
        return False


TypeSpec = CodeSpec | MembersSpec


@dataclass(frozen=True)
class TypeDecl:
    """A named type: either a definition (spec) or an alias, never both."""

    name: str
    category: str | None = None
    api: str | None = None
    alias: str | None = None
    spec: TypeSpec | None = None

    def __post_init__(self) -> None:
        if (self.alias is None) == (self.spec is None):
            raise ValueError(
                f"TypeDecl {self.name!r} must be exactly one of alias or definition"
            )

    @property
    def is_alias(self) -> bool:
        return self.alias is not None


@dataclass(frozen=True)
class RequireBlock:
    types: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()
    enums: tuple[str, ...] = ()
    depends: str | None = None
    api: str | None = None


@dataclass(frozen=True)
class Feature:
    name: str
    api: str | None = None
    number: str | None = None
    requires: tuple[RequireBlock, ...] = ()


@dataclass(frozen=True)
class Extension:
    """An optional capability set.

    obsoleted_by is the deprecation marker that removes an extension from
    every downstream model. deprecated_by and promoted_to are informational.
    """

    name: str
    number: int | None = None
    ext_type: str | None = None
    supported: str | None = None
    obsoleted_by: str | None = None
    deprecated_by: str | None = None
    promoted_to: str | None = None
    platform: str | None = None
    depends: str | None = None
    requires: tuple[RequireBlock, ...] = ()


@dataclass(frozen=True)
class TypesNode:
    decls: tuple[TypeDecl, ...]
    kind: ClassVar[NodeKind] = NodeKind.TYPES


@dataclass(frozen=True)
class FeatureNode:
    feature: Feature
    kind: ClassVar[NodeKind] = NodeKind.FEATURE


@dataclass(frozen=True)
class ExtensionsNode:
    extensions: tuple[Extension, ...]
    kind: ClassVar[NodeKind] = NodeKind.EXTENSIONS


@dataclass(frozen=True)
class OtherNode:
    tag: str
    kind: ClassVar[NodeKind] = NodeKind.OTHER


RegistryNode = TypesNode | FeatureNode | ExtensionsNode | OtherNode


@dataclass(frozen=True)
class Registry:
    nodes: tuple[RegistryNode, ...]


@dataclass(frozen=True)
class RegistryWarning:
    element: str
    message: str

    def __str__(self) -> str:
        return f"{self.element}: {self.message}"


VisitT = TypeVar("VisitT")


def visit_registry(
    registry: Registry,
    handlers: dict[NodeKind, Callable[..., Iterable[VisitT]]],
) -> list[VisitT]:
    """Dispatch every top-level node to the handler for its kind.

    Every NodeKind must have a handler, so a new node kind can never be
    skipped silently by an indexing pass.

    Args:
        registry: Loaded registry model.
        handlers: One callable per NodeKind, each returning an iterable of results.

    Returns:
        Concatenated handler results in document order.

    Raises:
        RuntimeError: If any NodeKind has no handler.
    """
    missing = [kind.value for kind in NodeKind if kind not in handlers]
    if missing:
        raise RuntimeError(f"No handler for registry node kinds: {', '.join(missing)}")

    results: list[VisitT] = []
    for node in registry.nodes:
        results.extend(handlers[node.kind](node))
    return results


def _skip(_node: RegistryNode) -> tuple[()]:
    return ()


def iter_type_decls(registry: Registry) -> list[TypeDecl]:
    return visit_registry(
        registry,
        {
            NodeKind.TYPES: lambda node: node.decls,
            NodeKind.FEATURE: _skip,
            NodeKind.EXTENSIONS: _skip,
            NodeKind.OTHER: _skip,
        },
    )


def iter_features(registry: Registry) -> list[Feature]:
    return visit_registry(
        registry,
        {
            NodeKind.TYPES: _skip,
            NodeKind.FEATURE: lambda node: (node.feature,),
            NodeKind.EXTENSIONS: _skip,
            NodeKind.OTHER: _skip,
        },
    )


def iter_extensions(registry: Registry) -> list[Extension]:
    return visit_registry(
        registry,
        {
            NodeKind.TYPES: _skip,
            NodeKind.FEATURE: _skip,
            NodeKind.EXTENSIONS: lambda node: node.extensions,
            NodeKind.OTHER: _skip,
        },
    )


# ===--- Registry loader ---=== #


_CODE_MARKUP_TAGS = {"name", "type", "apientry", "enum"}
_REQUIRE_ITEM_TAGS = ("type", "command", "enum")


def _intern(value: str | None) -> str | None:
    if not value:
        return None
    return sys.intern(value)


def _element_label(el: ET.Element) -> str:
    attrs = " ".join(f'{key}="{value}"' for key, value in sorted(el.attrib.items()))
    return f"<{el.tag} {attrs}>" if attrs else f"<{el.tag}>"


def _element_code(el: ET.Element) -> str:
    """Return the element's text content, leaving out <comment> children."""
    parts = [el.text or ""]
    for child in el:
        if child.tag != "comment":
            parts.append("".join(child.itertext()))
        parts.append(child.tail or "")
    return "".join(parts)


def _type_decl_name(t: ET.Element) -> str | None:
    name = t.get("name")
    if not name:
        name_el = t.find("name")
        if name_el is None:
            name_el = t.find("proto/name")
        if name_el is not None:
            name = name_el.text
    return _intern(name.strip() if name else None)


def _parse_member(
    m: ET.Element, owner: str, warnings: list[RegistryWarning]
) -> TypeMember | None:
    name_el = m.find("name")
    type_el = m.find("type")
    if name_el is None or type_el is None or not name_el.text or not type_el.text:
        warnings.append(RegistryWarning(owner, "struct member has no name or type"))
        return None
    return TypeMember(
        name=sys.intern(name_el.text.strip()),
        type_name=sys.intern(type_el.text.strip()),
        code=" ".join(_element_code(m).split()),
    )


def _parse_type(t: ET.Element, warnings: list[RegistryWarning]) -> TypeDecl | None:
    name = _type_decl_name(t)
    if name is None:
        warnings.append(
            RegistryWarning(_element_label(t), "type declaration has no name")
        )
        return None

    category = _intern(t.get("category"))
    api = _intern(t.get("api"))
    alias = _intern(t.get("alias"))
    if alias is not None:
        return TypeDecl(name=name, category=category, api=api, alias=alias)

    if category in ("struct", "union"):
        members = []
        for m in t.findall("member"):
            member = _parse_member(m, _element_label(t), warnings)
            if member is not None:
                members.append(member)
        return TypeDecl(
            name=name, category=category, api=api, spec=MembersSpec(tuple(members))
        )

    markup = tuple(
        CodeMarkup(kind=child.tag, text=(child.text or "").strip())
        for child in t.iter()
        if child is not t and child.tag in _CODE_MARKUP_TAGS
    )
    return TypeDecl(
        name=name,
        category=category,
        api=api,
        spec=CodeSpec(code=_element_code(t), markup=markup),
    )


def _parse_require(
    req: ET.Element, owner: str, warnings: list[RegistryWarning]
) -> RequireBlock:
    items: dict[str, list[str]] = {tag: [] for tag in _REQUIRE_ITEM_TAGS}
    for item in req:
        bucket = items.get(item.tag)
        if bucket is None:
            continue
        name = _intern(item.get("name"))
        if name is None:
            warnings.append(
                RegistryWarning(owner, f"<{item.tag}> in require block has no name")
            )
            continue
        bucket.append(name)
    return RequireBlock(
        types=tuple(items["type"]),
        commands=tuple(items["command"]),
        enums=tuple(items["enum"]),
        depends=_intern(req.get("depends")),
        api=_intern(req.get("api")),
    )


def _parse_feature(el: ET.Element, warnings: list[RegistryWarning]) -> Feature | None:
    name = _intern(el.get("name"))
    if name is None:
        warnings.append(RegistryWarning(_element_label(el), "feature has no name"))
        return None
    label = _element_label(el)
    return Feature(
        name=name,
        api=_intern(el.get("api")),
        number=_intern(el.get("number")),
        requires=tuple(
            _parse_require(req, label, warnings) for req in el.findall("require")
        ),
    )


def _parse_extension(
    el: ET.Element, warnings: list[RegistryWarning]
) -> Extension | None:
    name = _intern(el.get("name"))
    if name is None:
        warnings.append(RegistryWarning(_element_label(el), "extension has no name"))
        return None
    label = f'<extension name="{name}">'

    number = None
    raw_number = el.get("number")
    if raw_number:
        try:
            number = int(raw_number)
        except ValueError:
            warnings.append(
                RegistryWarning(label, f"extension number {raw_number!r} is not an integer")
            )

    return Extension(
        name=name,
        number=number,
        ext_type=_intern(el.get("type")),
        supported=_intern(el.get("supported")),
        obsoleted_by=_intern(el.get("obsoletedby")),
        deprecated_by=_intern(el.get("deprecatedby")),
        promoted_to=_intern(el.get("promotedto")),
        platform=_intern(el.get("platform")),
        depends=_intern(el.get("depends")),
        requires=tuple(
            _parse_require(req, label, warnings) for req in el.findall("require")
        ),
    )


def parse_registry(root: ET.Element) -> tuple[Registry, list[RegistryWarning]]:
    """Convert a parsed <registry> element into the typed registry model.

    Malformed sub-elements are left out of the model and reported as
    warnings; nothing here is fatal.

    Args:
        root: Registry XML root element.

    Returns:
        Tuple of (Registry, warnings in document order).
    """
    warnings: list[RegistryWarning] = []
    nodes: list[RegistryNode] = []

    for child in root:
        if child.tag == "types":
            decls = []
            for t in child.findall("type"):
                decl = _parse_type(t, warnings)
                if decl is not None:
                    decls.append(decl)
            nodes.append(TypesNode(tuple(decls)))
        elif child.tag == "feature":
            feature = _parse_feature(child, warnings)
            if feature is not None:
                nodes.append(FeatureNode(feature))
        elif child.tag == "extensions":
            extensions = []
            for el in child.findall("extension"):
                ext = _parse_extension(el, warnings)
                if ext is not None:
                    extensions.append(ext)
            nodes.append(ExtensionsNode(tuple(extensions)))
        else:
            nodes.append(OtherNode(sys.intern(str(child.tag))))

    return Registry(tuple(nodes)), warnings


def report_warnings(
    source: object,
    warnings: list[RegistryWarning],
    stream: TextIO | None = None,
) -> None:
    if not warnings:
        return
    stream = sys.stderr if stream is None else stream
    print(f"The following problems were found while parsing {source}:", file=stream)
    for warning in warnings:
        print(f"  {warning}", file=stream)


def load_registry(path: Path) -> Registry:
    """Read and parse the registry document at path.

    Non-fatal parse warnings are reported on stderr.

    Raises:
        ConfigurationError: MISSING_DOCUMENT when the file does not exist or
            cannot be read, UNPARSABLE_DOCUMENT when it is not a registry.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(
            "MISSING_DOCUMENT",
            f"Registry document not found: {path}",
            "Pass the path to vk.xml explicitly: --vk-xml Vulkan-Docs/xml/vk.xml",
        )
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as err:
        raise ConfigurationError(
            "UNPARSABLE_DOCUMENT",
            f"Registry document {path} is not well-formed XML: {err}",
        ) from err
    except OSError as err:
        raise ConfigurationError(
            "MISSING_DOCUMENT",
            f"Registry document {path} could not be read: {err}",
        ) from err

    if root.tag != "registry":
        raise ConfigurationError(
            "UNPARSABLE_DOCUMENT",
            f"Registry document {path} has root <{root.tag}>, expected <registry>",
        )

    registry, warnings = parse_registry(root)
    report_warnings(path, warnings)
    return registry


# ===--- Alias resolution ---=== #


def _lists_token(value: str, token: str) -> bool:
    """Return True when a comma-separated attribute value lists token."""
    return any(part.strip() == token for part in value.split(","))


def _in_api(decl_api: str | None, api: str | None) -> bool:
    if api is None or decl_api is None:
        return True
    return _lists_token(decl_api, api)


def _choose_decl(chosen: dict[str, TypeDecl], decl: TypeDecl, api: str | None) -> None:
    """Record decl under its name unless an earlier declaration is kept.

    The first declaration of a name wins, except that a declaration listing
    api replaces an earlier one restricted to other APIs.
    """
    current = chosen.get(decl.name)
    if current is None or (
        not _in_api(current.api, api) and _in_api(decl.api, api)
    ):
        chosen[decl.name] = decl


def get_aliases(registry: Registry, api: str | None = None) -> dict[str, str]:
    """Map every alias type name to the name it aliases.

    Exactly one hop: an alias of an alias maps to the intermediate name.
    Every alias declaration contributes, whatever its api attribute.

    Args:
        registry: Loaded registry model.
        api: When an alias name is declared more than once, the first
            declaration listing api is used.

    Returns:
        Dict of alias name -> canonical name, in declaration order.
    """
    chosen: dict[str, TypeDecl] = {}
    for decl in iter_type_decls(registry):
        if decl.alias is not None:
            _choose_decl(chosen, decl, api)
    return {name: decl.alias for name, decl in chosen.items()}


# ===--- Capability indexing ---=== #


EXTENSION_VENDOR_TIERS: tuple[str, ...] = ("KHR_", "EXT_")
"""Vendor prefixes that sort ahead of all others, in tier order."""

_API_PREFIX = "VK_"


def get_features(registry: Registry) -> dict[str, Feature]:
    """Return every feature keyed by name, in document order (ascending version)."""
    return {feature.name: feature for feature in iter_features(registry)}


def extension_sort_key(name: str) -> tuple[int, str]:
    """Return the (tier, name) key that totally orders extension names.

    Tier 0 is the KHR vendor, tier 1 EXT, tier 2 everything else. The vendor
    is read after an optional VK_ prefix. Within a tier names sort ascending.
    """
    vendor_part = name.removeprefix(_API_PREFIX)
    for tier, prefix in enumerate(EXTENSION_VENDOR_TIERS):
        if vendor_part.startswith(prefix):
            return tier, name
    return len(EXTENSION_VENDOR_TIERS), name


def extension_is_retained(ext: Extension, platform: str) -> bool:
    return ext.supported == platform and ext.obsoleted_by is None


def get_extensions(
    registry: Registry, platform: str = DEFAULT_PLATFORM
) -> dict[str, Extension]:
    """Return the extensions that take part in generation, in generation order.

    An extension is retained when its supported tag equals platform and it has
    no obsoletedby marker. A multi-API tag such as "vulkan,vulkansc" does not
    equal either API. Duplicate names collapse to the last one seen.

    Args:
        registry: Loaded registry model.
        platform: Target API identifier, e.g. "vulkan".

    Returns:
        Dict of extension name -> Extension ordered by extension_sort_key.
    """
    retained: dict[str, Extension] = {}
    for ext in iter_extensions(registry):
        if extension_is_retained(ext, platform):
            retained[ext.name] = ext
    return {name: retained[name] for name in sorted(retained, key=extension_sort_key)}


# ===--- Type provenance ---=== #


@dataclass(frozen=True)
class ProvenanceEntry:
    """A reachable type and the capabilities that require it, first-seen order."""

    decl: TypeDecl
    providers: tuple[str, ...]


def get_types(
    registry: Registry,
    aliases: dict[str, str],
    features: dict[str, Feature],
    extensions: dict[str, Extension],
    api: str | None = None,
) -> dict[str, ProvenanceEntry]:
    """Map each canonical type to the capabilities that require it.

    Features are walked first in their own order, then extensions in
    generation order. Required names go through one alias hop; names that
    resolve to no canonical declaration are ignored. Every canonical
    declaration is seeded whatever its api attribute. Types no capability
    requires are dropped.

    Args:
        registry: Loaded registry model.
        aliases: One-hop alias map from get_aliases.
        features: Ordered features from get_features.
        extensions: Ordered, filtered extensions from get_extensions.
        api: When a type name is declared more than once, the first
            declaration listing api is kept. Declarations for other APIs are
            still seeded, since a retained feature may require them.

    Returns:
        Dict of canonical type name -> ProvenanceEntry, sorted by type name.
    """
    decls: dict[str, TypeDecl] = {}
    for decl in iter_type_decls(registry):
        if not decl.is_alias:
            _choose_decl(decls, decl, api)
    providers: dict[str, list[str]] = {name: [] for name in decls}

    capabilities: list[tuple[str, tuple[RequireBlock, ...]]] = [
        (name, feature.requires) for name, feature in features.items()
    ]
    capabilities.extend((name, ext.requires) for name, ext in extensions.items())

    for provided_by, requires in capabilities:
        for block in requires:
            for type_name in block.types:
                canonical = aliases.get(type_name, type_name)
                entry = providers.get(canonical)
                if entry is not None and provided_by not in entry:
                    entry.append(provided_by)

    return {
        name: ProvenanceEntry(decl=decls[name], providers=tuple(providers[name]))
        for name in sorted(providers)
        if providers[name]
    }


# ===--- Header version ---=== #


_U16_MAX = 0xFFFF
_DIGITS_RE = re.compile(r"[0-9]+")


def parse_header_version(code: str, marker: str = HEADER_VERSION_MARKER) -> int:
    """Parse the token after the final whitespace of code as an unsigned 16-bit int.

    Raises:
        ConfigurationError: MALFORMED_HEADER_VERSION when the token is missing,
            not decimal digits, or larger than 65535.
    """
    parts = code.rsplit(None, 1)
    token = parts[-1] if len(parts) == 2 else ""
    if not _DIGITS_RE.fullmatch(token) or int(token) > _U16_MAX:
        raise ConfigurationError(
            "MALFORMED_HEADER_VERSION",
            f"{marker} value {token!r} is not an unsigned 16-bit integer",
            f"Check the {marker} define in the registry document.",
        )
    return int(token)


def get_header_version(
    registry: Registry,
    marker: str = HEADER_VERSION_MARKER,
    api: str | None = None,
) -> int:
    """Return the registry's header version stamp.

    Uses the first type declaration (document order) whose code markup names
    the marker.

    Raises:
        ConfigurationError: MISSING_HEADER_VERSION when no declaration names
            the marker, MALFORMED_HEADER_VERSION when its value does not parse.
    """
    for decl in iter_type_decls(registry):
        if decl.spec is None or not _in_api(decl.api, api):
            continue
        if decl.spec.has_markup_name(marker):
            return parse_header_version(decl.spec.code, marker)
    raise ConfigurationError(
        "MISSING_HEADER_VERSION",
        f"No type declaration defines {marker}",
        "Check that --vk-xml points at a complete vk.xml registry.",
    )


# ===--- Default Mojo emitters ---=== #


C_TO_MOJO = {
    "void": "NoneType",
    "char": "c_char",
    "float": "c_float",
    "double": "c_double",
    "int": "c_int",
    "int32_t": "Int32",
    "int64_t": "Int64",
    "uint8_t": "UInt8",
    "uint16_t": "UInt16",
    "uint32_t": "UInt32",
    "uint64_t": "UInt64",
    "size_t": "c_size_t",
    "VkBool32": "UInt32",
    "VkDeviceSize": "UInt64",
}

MOJO_RESERVED = {"ref", "in", "out", "var", "fn", "type"}

_FEATURES_STRUCT_RE = re.compile(r"^VkPhysicalDevice\w*Features\w*$")
_PROPERTIES_STRUCT_RE = re.compile(r"^VkPhysicalDevice\w*Properties\w*$")
_ARRAY_SIZE_RE = re.compile(r"\[\s*(\w+)\s*\]")
_CHAIN_MEMBERS = {"sType", "pNext"}


def to_snake_case(name: str) -> str:
    name = re.sub(r"(\d)D\b", r"_\1d", name)
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name).lower()


def vk_to_snake(name: str) -> str:
    return to_snake_case(name.removeprefix("vk"))


def mojo_ident(name: str) -> str:
    if name in MOJO_RESERVED:
        return name + "_"
    return name


def capability_field_name(name: str) -> str:
    """VK_KHR_swapchain -> khr_swapchain."""
    return mojo_ident(name.removeprefix(_API_PREFIX).lower())


def capability_struct_name(name: str) -> str:
    """VK_VERSION_1_0 -> Version10, VK_KHR_swapchain -> KhrSwapchain."""
    parts = name.removeprefix(_API_PREFIX).split("_")
    return "".join(part[:1].upper() + part[1:].lower() for part in parts if part)


def _describe_providers(
    providers: tuple[str, ...], extensions: dict[str, Extension]
) -> str:
    labels = []
    for provider in providers:
        ext = extensions.get(provider)
        if ext is not None and ext.ext_type:
            labels.append(f"{provider} [{ext.ext_type}]")
        else:
            labels.append(provider)
    return ", ".join(labels)


def _extension_note(ext: Extension) -> str:
    notes = []
    if ext.promoted_to:
        notes.append(f"promoted to {ext.promoted_to}")
    if ext.deprecated_by:
        notes.append(f"deprecated by {ext.deprecated_by}")
    return "; ".join(notes)


def emit_extensions(extensions: dict[str, Extension]) -> str:
    lines = ["# ========= EXTENSIONS =========", f"# {len(extensions)} extensions", ""]
    for name in extensions:
        lines.append(f'comptime {name.upper()}_EXTENSION_NAME = "{name}"')
    lines.append("")

    for ext_type, struct_name in (
        ("instance", "InstanceExtensions"),
        ("device", "DeviceExtensions"),
    ):
        members = [ext for ext in extensions.values() if ext.ext_type == ext_type]
        lines.append("@fieldwise_init")
        lines.append(f"struct {struct_name}(Copyable, Movable):")
        lines.append(f'    """Enabled {ext_type} extensions."""')
        if not members:
            lines.append("    pass")
        for ext in members:
            field = f"    var {capability_field_name(ext.name)}: Bool"
            note = _extension_note(ext)
            lines.append(f"{field}  # {note}" if note else field)
        lines.append("")

    return "\n".join(lines) + "\n"


def _reachable_structs(
    types: dict[str, ProvenanceEntry], pattern: re.Pattern[str]
) -> list[ProvenanceEntry]:
    return [
        entry
        for name, entry in types.items()
        if entry.decl.category == "struct" and pattern.match(name)
    ]


def emit_features(
    types: dict[str, ProvenanceEntry], extensions: dict[str, Extension]
) -> str:
    lines = ["# ========= FEATURES =========", ""]
    body: list[str] = []
    seen: set[str] = set()

    for entry in _reachable_structs(types, _FEATURES_STRUCT_RE):
        flags = [m for m in entry.decl.spec.members if m.type_name == "VkBool32"]
        if not flags:
            continue
        body.append(
            f"    # {entry.decl.name}: {_describe_providers(entry.providers, extensions)}"
        )
        for member in flags:
            field = mojo_ident(to_snake_case(member.name))
            if field in seen:
                continue
            seen.add(field)
            body.append(f"    var {field}: Bool")

    lines.append("@fieldwise_init")
    lines.append("struct Features(Copyable, Movable):")
    lines.append('    """Device features reachable from the selected registry."""')
    lines.extend(body)
    if not seen:
        lines.append("    pass")
    lines.append("")
    return "\n".join(lines) + "\n"


def emit_fns(features: dict[str, Feature], extensions: dict[str, Extension]) -> str:
    lines = [
        "# ========= FUNCTION POINTERS =========",
        "",
        "comptime FuncPtr = ImmutOpaquePointer[ImmutExternalOrigin]",
        "",
    ]
    capabilities: list[tuple[str, tuple[RequireBlock, ...]]] = [
        (name, feature.requires) for name, feature in features.items()
    ]
    capabilities.extend((name, ext.requires) for name, ext in extensions.items())

    for name, requires in capabilities:
        commands = list(
            dict.fromkeys(cmd for block in requires for cmd in block.commands)
        )
        if not commands:
            continue
        lines.append("@fieldwise_init")
        lines.append(
            f"struct {capability_struct_name(name)}FnPointers(Copyable, Movable):"
        )
        lines.append(f'    """Function pointers required by {name}."""')
        for cmd in commands:
            lines.append(f"    var {mojo_ident(vk_to_snake(cmd))}: FuncPtr")
        lines.append("")

    return "\n".join(lines) + "\n"


def mojo_member_type(member: TypeMember) -> str:
    base = C_TO_MOJO.get(member.type_name, member.type_name)
    if "*" in member.code:
        return f"UnsafePointer[{base}, MutAnyOrigin]"
    size = _ARRAY_SIZE_RE.search(member.code)
    if size:
        return f"InlineArray[{base}, {size.group(1)}]"
    return base


def emit_properties(
    types: dict[str, ProvenanceEntry], extensions: dict[str, Extension]
) -> str:
    lines = ["# ========= PROPERTIES =========", ""]
    body: list[str] = []
    seen: set[str] = set()

    for entry in _reachable_structs(types, _PROPERTIES_STRUCT_RE):
        members = [m for m in entry.decl.spec.members if m.name not in _CHAIN_MEMBERS]
        if not members:
            continue
        body.append(
            f"    # {entry.decl.name}: {_describe_providers(entry.providers, extensions)}"
        )
        for member in members:
            field = mojo_ident(to_snake_case(member.name))
            if field in seen:
                continue
            seen.add(field)
            body.append(f"    var {field}: {mojo_member_type(member)}")

    lines.append("@fieldwise_init")
    lines.append("struct Properties(Copyable, Movable):")
    lines.append('    """Device properties reachable from the selected registry."""')
    lines.extend(body)
    if not seen:
        lines.append("    pass")
    lines.append("")
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class Emitters:
    """The four code emitters, each returning one block of source text."""

    extensions: Callable[[dict[str, Extension]], str]
    features: Callable[[dict[str, ProvenanceEntry], dict[str, Extension]], str]
    fns: Callable[[dict[str, Feature], dict[str, Extension]], str]
    properties: Callable[[dict[str, ProvenanceEntry], dict[str, Extension]], str]


DEFAULT_EMITTERS = Emitters(
    extensions=emit_extensions,
    features=emit_features,
    fns=emit_fns,
    properties=emit_properties,
)


# ===--- Generation pipeline ---=== #


@dataclass(frozen=True)
class AutogenModels:
    """Every model produced from one registry, ready for the emitters.

    Attributes:
        aliases: One-hop alias map used to build types.
        features: Features in document order.
        extensions: Retained extensions in generation order.
        types: Reachable types sorted by name, with their providers.
        header_version: VK_HEADER_VERSION of the registry.
    """

    aliases: dict[str, str]
    features: dict[str, Feature]
    extensions: dict[str, Extension]
    types: dict[str, ProvenanceEntry]
    header_version: int


def extract_models(
    registry: Registry, platform: str = DEFAULT_PLATFORM
) -> AutogenModels:
    """Run every extraction stage over a loaded registry.

    Raises:
        ConfigurationError: Propagated from get_header_version.
    """
    aliases = get_aliases(registry, api=platform)
    features = get_features(registry)
    extensions = get_extensions(registry, platform)
    header_version = get_header_version(registry, api=platform)
    types = get_types(registry, aliases, features, extensions, api=platform)
    return AutogenModels(
        aliases=aliases,
        features=features,
        extensions=extensions,
        types=types,
        header_version=header_version,
    )


def format_header_comment(header_version: int) -> list[str]:
    return [
        f"# This file is auto-generated by vkautogen from vk.xml header version {header_version}.",
        "# It should not be edited manually. Changes should be made by editing vkautogen.",
    ]


def generate(models: AutogenModels, emitters: Emitters | None = None) -> str:
    """Render the complete output text: header comment, then the four blocks.

    Blocks are concatenated in the order extensions, features, fns, properties.
    """
    emitters = DEFAULT_EMITTERS if emitters is None else emitters
    blocks = [
        emitters.extensions(models.extensions),
        emitters.features(models.types, models.extensions),
        emitters.fns(models.features, models.extensions),
        emitters.properties(models.types, models.extensions),
    ]
    header = "\n".join(format_header_comment(models.header_version))
    return header + "\n\n" + "".join(blocks)


def write(
    writer: TextIO,
    vk_xml: Path = DEFAULT_VK_XML,
    platform: str = DEFAULT_PLATFORM,
    emitters: Emitters | None = None,
) -> AutogenModels:
    """Load vk_xml, build every model, and write the generated text to writer.

    The text is built completely in memory and written with a single call, so
    writer receives nothing when any stage fails.

    Args:
        writer: Output sink.
        vk_xml: Registry document path.
        platform: Target API identifier.
        emitters: Emitter set; DEFAULT_EMITTERS when None.

    Returns:
        The models the text was generated from.

    Raises:
        ConfigurationError: Missing or unparsable document, missing or
            malformed header version.
    """
    registry = load_registry(vk_xml)
    models = extract_models(registry, platform)
    text = generate(models, emitters)
    writer.write(text)
    return models


# ===--- CLI config ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    vk_xml: Path
    output: Path
    platform: str


@dataclass(frozen=True)
class DiscoveryConfig:
    command: str
    info_type: str | None
    vk_xml: Path
    platform: str


_PLATFORM_RE = re.compile(r"^[a-z][a-z0-9]*$")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate Mojo metadata tables from the Vulkan registry"
    )
    parser.add_argument("--vk-xml", type=Path, default=DEFAULT_VK_XML)
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT)
    parser.add_argument("--platform", type=str, default=DEFAULT_PLATFORM)

    discovery_group = parser.add_mutually_exclusive_group()
    discovery_group.add_argument(
        "--list-extensions", action="store_true", default=False
    )
    discovery_group.add_argument("--list-features", action="store_true", default=False)
    discovery_group.add_argument("--info", type=str, default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_argument_parser().parse_args(argv)


def validate_platform(raw: str) -> str:
    if _PLATFORM_RE.match(raw):
        return raw
    raise ConfigurationError(
        "INVALID_PLATFORM",
        f"Invalid platform identifier: {raw!r}",
        "Use a lowercase API name such as vulkan or vulkansc.",
    )


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    platform = validate_platform(args.platform)

    if args.list_extensions or args.list_features or args.info is not None:
        if args.list_extensions:
            command = "list-extensions"
        elif args.list_features:
            command = "list-features"
        else:
            command = "info"
        return DiscoveryConfig(
            command=command,
            info_type=args.info,
            vk_xml=args.vk_xml,
            platform=platform,
        )

    return GenerateConfig(vk_xml=args.vk_xml, output=args.output, platform=platform)


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Discovery commands ---=== #


def _count_required(requires: tuple[RequireBlock, ...]) -> tuple[int, int]:
    types = {name for block in requires for name in block.types}
    commands = {name for block in requires for name in block.commands}
    return len(types), len(commands)


def format_extensions_table(extensions: dict[str, Extension], platform: str) -> str:
    """Return the --list-extensions output, one row per extension in generation order.

    Output format:

        3 vulkan extensions in generation order:

          VK_KHR_surface      instance  1 types   1 cmds
          VK_KHR_swapchain    device    1 types   1 cmds  depends: VK_KHR_surface
    """
    lines = [f"{len(extensions)} {platform} extensions in generation order:", ""]
    name_width = max((len(name) for name in extensions), default=0)
    type_width = max((len(ext.ext_type or "") for ext in extensions.values()), default=0)

    for name, ext in extensions.items():
        type_count, command_count = _count_required(ext.requires)
        type_col = f"{type_count} types"
        cmd_col = f"{command_count} cmds"
        row = (
            f"  {name.ljust(name_width)}  {(ext.ext_type or '').ljust(type_width)}"
            f"  {type_col:<9} {cmd_col:<8}"
        )
        if ext.depends:
            row = row.rstrip() + f"  depends: {ext.depends}"
        lines.append(row.rstrip())

    lines.append("")
    return "\n".join(lines)


def format_features_table(features: dict[str, Feature]) -> str:
    lines = [f"{len(features)} features in document order:", ""]
    name_width = max((len(name) for name in features), default=0)
    for name, feature in features.items():
        type_count, command_count = _count_required(feature.requires)
        number = feature.number or "-"
        lines.append(
            f"  {name.ljust(name_width)}  {number:<5} "
            f"{type_count} types  {command_count} cmds"
        )
    lines.append("")
    return "\n".join(lines)


def format_type_provenance(query: str, entry: ProvenanceEntry) -> str:
    """Return the --info output for one type.

    Output format:

        VkSwapchainKHR (handle)
          Alias:    VkSwapchainKHR_old
          Required by (1):
            VK_KHR_swapchain
    """
    decl = entry.decl
    category = f" ({decl.category})" if decl.category else ""
    lines = [f"{decl.name}{category}"]
    if query != decl.name:
        lines.append(f"  Alias:    {query}")
    lines.append(f"  Required by ({len(entry.providers)}):")
    for provider in entry.providers:
        lines.append(f"    {provider}")
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    """Execute one discovery command and print its output to stdout.

    Raises:
        ConfigurationError: Propagated from load_registry.
        SystemExit(1): When --info names a type no capability requires.
    """
    registry = load_registry(config.vk_xml)

    if config.command == "list-extensions":
        extensions = get_extensions(registry, config.platform)
        print(format_extensions_table(extensions, config.platform), end="")

    elif config.command == "list-features":
        print(format_features_table(get_features(registry)), end="")

    elif config.command == "info":
        assert config.info_type is not None
        aliases = get_aliases(registry, api=config.platform)
        features = get_features(registry)
        extensions = get_extensions(registry, config.platform)
        types = get_types(registry, aliases, features, extensions, api=config.platform)
        entry = types.get(aliases.get(config.info_type, config.info_type))
        if entry is None:
            print(
                f"Error: type '{config.info_type}' is not required by any "
                f"{config.platform} feature or extension",
                file=sys.stderr,
            )
            raise SystemExit(1)
        print(format_type_provenance(config.info_type, entry), end="")


# ===--- Main generation ---=== #


def run_generate(config: GenerateConfig) -> AutogenModels:
    """Generate the output file described by config.

    The output file is only opened once the complete text exists.
    """
    print(f"Parsing: {config.vk_xml}")
    buffer = io.StringIO()
    models = write(buffer, config.vk_xml, config.platform)
    print(f"  Header version: {models.header_version}")
    print(
        f"  Capabilities: {len(models.features)} features, "
        f"{len(models.extensions)} extensions"
    )
    print(f"  Types: {len(models.types)} reachable, {len(models.aliases)} aliases")

    text = buffer.getvalue()
    config.output.parent.mkdir(parents=True, exist_ok=True)
    config.output.write_text(text, encoding="utf-8")
    print(f"  Written: {text.count(chr(10))} lines to {config.output}")
    return models


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
            return
        run_generate(config)
    except ConfigurationError as err:
        print(f"Configuration error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err
    except OSError as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(1) from err
    except (RuntimeError, ValueError) as err:
        print(f"Internal error: {err}", file=sys.stderr)
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
