"""
Catalog document parsing and validation.

Turns the raw JSON document served by the catalog source into an immutable
CatalogSnapshot. Every regex is compiled here, once. Any problem rejects the
document as a whole; problems are reported with category / entry index /
field precision so a bad edit can be located quickly.
"""
import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from ..errors import CatalogIssue, CatalogValidationError
from .models import CatalogSnapshot, ProviderCategory, ProviderEntry
from .rules import (
    All,
    AnyOf,
    HeaderEquals,
    HeaderIncludes,
    HeaderPresent,
    IssuerEquals,
    IssuerIncludes,
    MxRegex,
    MxSuffix,
    Not,
    NsRegex,
    NsSuffix,
    RegistrarEquals,
    RegistrarIncludes,
    Rule,
    compile_pattern,
)

logger = logging.getLogger("providers.parser")


class ProviderEntryDocument(BaseModel):
    """Shape of one catalog entry before its rule is parsed."""
    name: str = Field(min_length=1)
    domain: str = Field(min_length=1)
    rule: Dict[str, Any]


# Keys that make a node a combinator rather than a leaf
COMBINATOR_KEYS = ("all", "any", "not")

# Leaf kind -> required string fields
LEAF_FIELDS: Dict[str, Tuple[str, ...]] = {
    "headerPresent": ("name",),
    "headerEquals": ("name", "value"),
    "headerIncludes": ("name", "substr"),
    "mxSuffix": ("suffix",),
    "mxRegex": ("pattern",),
    "nsSuffix": ("suffix",),
    "nsRegex": ("pattern",),
    "issuerIncludes": ("substr",),
    "issuerEquals": ("value",),
    "registrarIncludes": ("substr",),
    "registrarEquals": ("value",),
}


class _RuleError(Exception):
    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path
        self.message = message


def _join(path: str, part: str) -> str:
    if part.startswith("["):
        return f"{path}{part}"
    return f"{path}.{part}" if path else part


def parse_rule(raw: Any, path: str = "rule") -> Rule:
    """
    Parse one rule node (recursively).

    Raises:
        _RuleError: with the dotted path of the offending field
    """
    if not isinstance(raw, dict):
        raise _RuleError(path, "rule must be an object")

    combinators = [name for name in COMBINATOR_KEYS if name in raw]
    if len(combinators) > 1:
        raise _RuleError(path, f"rule mixes {' and '.join(repr(c) for c in combinators)}; use one per node")
    if combinators and "kind" in raw:
        raise _RuleError(_join(path, "kind"), f"'kind' cannot be combined with '{combinators[0]}'")

    if "all" in raw or "any" in raw:
        combinator = "all" if "all" in raw else "any"
        children = raw[combinator]
        if not isinstance(children, list):
            raise _RuleError(_join(path, combinator), f"'{combinator}' must be a list of rules")
        parsed = tuple(
            parse_rule(child, _join(_join(path, combinator), f"[{i}]"))
            for i, child in enumerate(children)
        )
        return All(parsed) if combinator == "all" else AnyOf(parsed)

    if "not" in raw:
        return Not(parse_rule(raw["not"], _join(path, "not")))

    kind = raw.get("kind")
    if kind not in LEAF_FIELDS:
        raise _RuleError(_join(path, "kind"), f"unknown rule kind {kind!r}")

    values: Dict[str, str] = {}
    for name in LEAF_FIELDS[kind]:
        value = raw.get(name)
        if not isinstance(value, str) or not value:
            raise _RuleError(_join(path, name), f"'{name}' must be a non-empty string")
        values[name] = value

    if kind in ("mxRegex", "nsRegex"):
        flags = raw.get("flags") or ""
        if not isinstance(flags, str):
            raise _RuleError(_join(path, "flags"), "'flags' must be a string")
        try:
            compiled = compile_pattern(values["pattern"], flags)
        except ValueError as e:
            raise _RuleError(_join(path, "flags"), str(e))
        except re.error as e:
            raise _RuleError(_join(path, "pattern"), f"Invalid regex pattern: {e}")
        cls = MxRegex if kind == "mxRegex" else NsRegex
        return cls(pattern=values["pattern"], flags=flags, compiled=compiled)

    if kind == "headerPresent":
        return HeaderPresent(values["name"])
    if kind == "headerEquals":
        return HeaderEquals(values["name"], values["value"])
    if kind == "headerIncludes":
        return HeaderIncludes(values["name"], values["substr"])
    if kind == "mxSuffix":
        return MxSuffix(values["suffix"])
    if kind == "nsSuffix":
        return NsSuffix(values["suffix"])
    if kind == "issuerIncludes":
        return IssuerIncludes(values["substr"])
    if kind == "issuerEquals":
        return IssuerEquals(values["value"])
    if kind == "registrarIncludes":
        return RegistrarIncludes(values["substr"])
    return RegistrarEquals(values["value"])


def _parse_entry(
    category: str,
    index: int,
    raw: Any,
    issues: List[CatalogIssue],
) -> Optional[ProviderEntry]:
    if not isinstance(raw, dict):
        issues.append(CatalogIssue(category, index, None, "entry must be an object"))
        return None

    try:
        doc = ProviderEntryDocument.model_validate(raw)
    except ValidationError as e:
        for err in e.errors():
            field_name = ".".join(str(part) for part in err["loc"]) or None
            issues.append(CatalogIssue(category, index, field_name, err["msg"]))
        return None

    try:
        rule = parse_rule(doc.rule)
    except _RuleError as e:
        issues.append(CatalogIssue(category, index, e.path, e.message))
        return None

    return ProviderEntry(name=doc.name.strip(), domain=doc.domain.strip().lower(), rule=rule)


def catalog_version(raw: Mapping[str, Any]) -> str:
    """Content hash of the canonical document, stable across key order."""
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:12]


def parse_catalog(raw: Any, loaded_at: Optional[datetime] = None) -> CatalogSnapshot:
    """
    Validate a raw catalog document and build a snapshot.

    Args:
        raw: Parsed JSON document keyed by category
        loaded_at: Timestamp recorded on the snapshot (defaults to now)

    Returns:
        CatalogSnapshot with every known category present

    Raises:
        CatalogValidationError: listing every problem found
    """
    if not isinstance(raw, dict):
        raise CatalogValidationError([
            CatalogIssue(None, None, None, f"catalog must be an object, got {type(raw).__name__}")
        ])

    known = {category.value for category in ProviderCategory}
    for key in raw:
        if key not in known:
            logger.warning(f"Ignoring unknown catalog category '{key}'")

    issues: List[CatalogIssue] = []
    entries: Dict[ProviderCategory, Tuple[ProviderEntry, ...]] = {}

    for category in ProviderCategory:
        raw_entries = raw.get(category.value, [])
        if raw_entries is None:
            raw_entries = []
        if not isinstance(raw_entries, list):
            issues.append(CatalogIssue(category.value, None, None, "category must be a list"))
            continue

        parsed: List[ProviderEntry] = []
        for index, raw_entry in enumerate(raw_entries):
            entry = _parse_entry(category.value, index, raw_entry, issues)
            if entry is not None:
                parsed.append(entry)
        entries[category] = tuple(parsed)

    if issues:
        raise CatalogValidationError(issues)

    return CatalogSnapshot(
        entries=MappingProxyType(entries),
        version=catalog_version(raw),
        loaded_at=loaded_at or datetime.now(timezone.utc),
    )
