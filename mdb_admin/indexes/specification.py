"""
Index specification types.

IndexKeys and IndexOptions are validated when they are built, so a malformed
specification never reaches the server. IndexDescriptor is the read-only
view of one entry in a listIndexes response.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from jsonschema import SchemaError, ValidationError, validate
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..constants import MAX_INDEX_NAME_LENGTH, VALID_INDEX_DIRECTIONS
from ..core.types import CollectionNamespace
from ..exceptions import InvalidArgumentError
from .helpers import generate_index_name, keys_to_dict, normalize_direction, normalize_keys

logger = logging.getLogger(__name__)

KeySpec = str | Mapping[str, Any] | Sequence[Any]

# Fields of a listIndexes entry that are not index options
_DESCRIPTOR_RESERVED_FIELDS = frozenset({"v", "key", "name", "ns"})

# A text index stores its fields as these two key entries plus a "weights" option
_TEXT_INDEX_KEY = ("_fts", "text")
_TEXT_INDEX_VERSION_KEY = ("_ftsx", 1)

INDEX_SPECIFICATION_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["keys"],
    "additionalProperties": False,
    "properties": {
        "keys": {
            "oneOf": [
                {"type": "string", "minLength": 1},
                {
                    "type": "object",
                    "minProperties": 1,
                    "additionalProperties": {"enum": list(VALID_INDEX_DIRECTIONS)},
                },
                {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "array",
                        "minItems": 2,
                        "maxItems": 2,
                        "prefixItems": [
                            {"type": "string", "minLength": 1},
                            {"enum": list(VALID_INDEX_DIRECTIONS)},
                        ],
                    },
                },
            ]
        },
        "options": {"type": "object"},
    },
}
"""JSON schema for declarative index definitions ({"keys": ..., "options": ...})."""


class IndexKeys(Sequence):
    """
    Ordered, immutable field -> direction mapping of an index.

    Accepts a field name, a mapping, or a sequence of (field, direction)
    pairs. Two IndexKeys are equal when their ordered pairs are equal.
    """

    __slots__ = ("_pairs",)

    def __init__(self, keys: "KeySpec | IndexKeys", *, validate_directions: bool = True):
        if isinstance(keys, IndexKeys):
            self._pairs = keys._pairs
            return

        try:
            pairs = normalize_keys(keys)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(
                f"Index keys must be a field name, a mapping or (field, direction) pairs: {e}",
                context={"keys": repr(keys)},
            ) from e

        if not pairs:
            raise InvalidArgumentError("Index key specification must not be empty")

        seen: set[str] = set()
        normalized: list[tuple[str, Any]] = []
        for field_name, direction in pairs:
            if not isinstance(field_name, str) or not field_name.strip():
                raise InvalidArgumentError(
                    "Index field names must be non-empty strings",
                    context={"field": repr(field_name)},
                )
            if field_name in seen:
                raise InvalidArgumentError(
                    f"Field '{field_name}' appears more than once in the index keys",
                    context={"field": field_name},
                )
            seen.add(field_name)
            direction = normalize_direction(direction)
            if validate_directions and (
                isinstance(direction, bool) or direction not in VALID_INDEX_DIRECTIONS
            ):
                raise InvalidArgumentError(
                    f"Unsupported index direction {direction!r} for field '{field_name}'",
                    context={"field": field_name, "allowed": list(VALID_INDEX_DIRECTIONS)},
                )
            normalized.append((field_name, direction))

        self._pairs: tuple[tuple[str, Any], ...] = tuple(normalized)

    @classmethod
    def from_server(cls, key_document: Mapping[str, Any]) -> "IndexKeys":
        """Build keys from a stored index; directions are taken as reported."""
        return cls(key_document, validate_directions=False)

    def __getitem__(self, index):
        return self._pairs[index]

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return iter(self._pairs)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, IndexKeys):
            return self._pairs == other._pairs
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __repr__(self) -> str:
        return f"IndexKeys({list(self._pairs)!r})"

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self._pairs)

    @property
    def default_name(self) -> str:
        """The name the server assigns when none is given (e.g. "customerId_1")."""
        return generate_index_name(list(self._pairs))

    def to_document(self) -> dict[str, Any]:
        return keys_to_dict(list(self._pairs))


class IndexOptions(BaseModel):
    """
    Typed options record for index creation.

    Field names are pythonic; to_document() renders the server's names.
    Unset options are omitted from the command.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=MAX_INDEX_NAME_LENGTH)
    unique: bool | None = None
    sparse: bool | None = None
    expire_after_seconds: int | None = Field(default=None, ge=0, alias="expireAfterSeconds")
    partial_filter_expression: dict[str, Any] | None = Field(
        default=None, alias="partialFilterExpression"
    )
    hidden: bool | None = None
    weights: dict[str, int] | None = None
    default_language: str | None = None
    collation: dict[str, Any] | None = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def coerce_options(options: "IndexOptions | Mapping[str, Any] | None") -> IndexOptions:
    """Accept an IndexOptions, a plain mapping (python or server names), or None."""
    if options is None:
        return IndexOptions()
    if isinstance(options, IndexOptions):
        return options
    try:
        return IndexOptions.model_validate(dict(options))
    except PydanticValidationError as e:
        raise InvalidArgumentError(
            f"Invalid index options: {e.errors(include_url=False)}",
            context={"options": dict(options)},
        ) from e
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Index options must be a mapping: {e}") from e


@dataclass(frozen=True)
class IndexSpecification:
    """Keys plus options: one entry of a createIndexes command."""

    keys: IndexKeys
    options: IndexOptions = field(default_factory=IndexOptions)

    def __post_init__(self) -> None:
        if not isinstance(self.keys, IndexKeys):
            object.__setattr__(self, "keys", IndexKeys(self.keys))
        if not isinstance(self.options, IndexOptions):
            object.__setattr__(self, "options", coerce_options(self.options))

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "IndexSpecification":
        """
        Build a specification from a declarative definition.

        Example:
            IndexSpecification.from_document(
                {"keys": [["customerId", 1]], "options": {"unique": True}}
            )

        Raises:
            InvalidArgumentError: If the document does not match
                INDEX_SPECIFICATION_SCHEMA or its options are invalid
        """
        instance = _to_json_compatible(document)
        try:
            validate(instance=instance, schema=INDEX_SPECIFICATION_SCHEMA)
        except ValidationError as e:
            path = ".".join(str(p) for p in e.absolute_path) or "root"
            raise InvalidArgumentError(
                f"Invalid index definition at '{path}': {e.message}",
                context={"path": path},
            ) from e
        except SchemaError as e:
            logger.exception("Index specification schema is invalid")
            raise InvalidArgumentError(f"Index specification schema error: {e.message}") from e

        return cls(IndexKeys(instance["keys"]), coerce_options(instance.get("options")))

    @property
    def index_name(self) -> str:
        return self.options.name or self.keys.default_name

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {"key": self.keys.to_document(), "name": self.index_name}
        for option, value in self.options.to_document().items():
            if option != "name":
                document[option] = value
        return document


def _to_json_compatible(value: Any) -> Any:
    """Tuples become lists so jsonschema treats them as arrays."""
    if isinstance(value, Mapping):
        return {k: _to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_compatible(v) for v in value]
    return value


@dataclass(frozen=True)
class IndexDescriptor:
    """
    One index as stored on the server.

    Not owned by the client and never cached: every listing re-fetches.
    """

    name: str
    namespace: CollectionNamespace
    keys: IndexKeys
    options: Mapping[str, Any] = field(default_factory=dict, hash=False)
    version: int | None = None

    @classmethod
    def from_document(
        cls, document: Mapping[str, Any], namespace: CollectionNamespace
    ) -> "IndexDescriptor":
        options = {k: v for k, v in document.items() if k not in _DESCRIPTOR_RESERVED_FIELDS}
        return cls(
            name=document["name"],
            namespace=namespace,
            keys=IndexKeys.from_server(document["key"]),
            options=options,
            version=document.get("v"),
        )

    @property
    def is_text(self) -> bool:
        return _TEXT_INDEX_KEY in self.keys

    def matches_keys(self, keys: "KeySpec | IndexKeys") -> bool:
        """
        Key-mapping equality; options are ignored.

        For a text index the requested text fields (``{"title": "text"}``)
        are compared, in any order, with the fields listed in ``weights``.
        """
        wanted = IndexKeys(keys, validate_directions=False)
        if self.keys == wanted:
            return True
        if not self.is_text:
            return False
        return _collapse_requested_text_fields(wanted) == self._collapse_stored_text_fields()

    def _collapse_stored_text_fields(self) -> tuple[tuple[str, Any], ...]:
        text_fields = frozenset(self.options.get("weights", {}))
        collapsed = []
        for pair in self.keys:
            if pair == _TEXT_INDEX_KEY:
                collapsed.append(("$text", text_fields))
            elif pair != _TEXT_INDEX_VERSION_KEY:
                collapsed.append(pair)
        return tuple(collapsed)

    @property
    def unique(self) -> bool:
        return bool(self.options.get("unique", False))


def _collapse_requested_text_fields(keys: IndexKeys) -> tuple[tuple[str, Any], ...]:
    """Replace the "text" fields of ``keys`` with one ("$text", fields) entry in their place."""
    text_fields = frozenset(name for name, direction in keys if direction == "text")
    collapsed = []
    for name, direction in keys:
        if direction != "text":
            collapsed.append((name, direction))
        elif ("$text", text_fields) not in collapsed:
            collapsed.append(("$text", text_fields))
    return tuple(collapsed)
