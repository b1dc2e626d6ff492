"""
Detection rule AST and its evaluator.

A rule is either a leaf predicate over the collected signals or a
combinator (all / any / not) over other rules. Catalog entries carry one
rule each; the classifier evaluates them in catalog order.
"""
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Pattern, Tuple, Union

if TYPE_CHECKING:
    from .models import Signals


# ============================================================================
# Leaf predicates
# ============================================================================

@dataclass(frozen=True)
class HeaderPresent:
    name: str


@dataclass(frozen=True)
class HeaderEquals:
    name: str
    value: str


@dataclass(frozen=True)
class HeaderIncludes:
    name: str
    substr: str


@dataclass(frozen=True)
class MxSuffix:
    suffix: str


@dataclass(frozen=True)
class MxRegex:
    pattern: str
    flags: str = ""
    compiled: Optional[Pattern] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class NsSuffix:
    suffix: str


@dataclass(frozen=True)
class NsRegex:
    pattern: str
    flags: str = ""
    compiled: Optional[Pattern] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class IssuerIncludes:
    substr: str


@dataclass(frozen=True)
class IssuerEquals:
    value: str


@dataclass(frozen=True)
class RegistrarIncludes:
    substr: str


@dataclass(frozen=True)
class RegistrarEquals:
    value: str


# ============================================================================
# Combinators
# ============================================================================

@dataclass(frozen=True)
class All:
    rules: Tuple["Rule", ...]


@dataclass(frozen=True)
class AnyOf:
    rules: Tuple["Rule", ...]


@dataclass(frozen=True)
class Not:
    rule: "Rule"


Rule = Union[
    HeaderPresent, HeaderEquals, HeaderIncludes,
    MxSuffix, MxRegex, NsSuffix, NsRegex,
    IssuerIncludes, IssuerEquals,
    RegistrarIncludes, RegistrarEquals,
    All, AnyOf, Not,
]


# JS-style flag letters accepted in catalog documents
REGEX_FLAGS: Dict[str, int] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,  # str patterns are already unicode
    "g": 0,  # global/sticky have no meaning for a boolean test
    "y": 0,
}


def compile_pattern(pattern: str, flags: Optional[str] = None) -> Pattern:
    """
    Compile a catalog regex. Matching is always case-insensitive.

    Raises:
        ValueError: on an unknown flag letter
        re.error: on a malformed pattern
    """
    compiled_flags = re.IGNORECASE
    for letter in flags or "":
        if letter not in REGEX_FLAGS:
            raise ValueError(f"Unsupported regex flag {letter!r}")
        compiled_flags |= REGEX_FLAGS[letter]
    return re.compile(pattern, compiled_flags)


# ============================================================================
# Evaluation
# ============================================================================

@dataclass(frozen=True)
class DetectionContext:
    """
    Normalised view of the signals, computed once per classification.

    Header names and values are lower-cased (last occurrence wins), DNS
    hosts are lower-cased without the trailing root dot.
    """
    headers: Dict[str, str]
    mx: Tuple[str, ...]
    ns: Tuple[str, ...]
    issuer: str
    registrar: str


def _normalize_host(host: str) -> str:
    return host.strip().lower().rstrip(".")


def _mx_host(value: str) -> str:
    # Some resolvers render MX values as "<priority> <host>"
    parts = value.split()
    return parts[-1] if parts else ""


def build_context(signals: "Signals") -> DetectionContext:
    """Normalise raw signals into a DetectionContext."""
    headers: Dict[str, str] = {}
    for header in signals.headers:
        headers[header.name.strip().lower()] = header.value.strip().lower()

    mx: List[str] = []
    ns: List[str] = []
    for record in signals.dns_records:
        record_type = record.type.upper()
        if record_type == "MX":
            mx.append(_normalize_host(_mx_host(record.value)))
        elif record_type == "NS":
            ns.append(_normalize_host(record.value))

    return DetectionContext(
        headers=headers,
        mx=tuple(h for h in mx if h),
        ns=tuple(h for h in ns if h),
        issuer=(signals.cert_issuer or "").strip().lower(),
        registrar=(signals.registrar or "").strip().lower(),
    )


def _any_suffix(hosts: Iterable[str], suffix: str) -> bool:
    suffix = _normalize_host(suffix)
    if not suffix:
        return False
    return any(h == suffix or h.endswith("." + suffix) for h in hosts)


def _any_regex(hosts: Iterable[str], rule: Union[MxRegex, NsRegex]) -> bool:
    compiled = rule.compiled
    if compiled is None:
        try:
            compiled = compile_pattern(rule.pattern, rule.flags)
        except (re.error, ValueError):
            return False
    return any(compiled.search(h) for h in hosts)


def evaluate(rule: Rule, signals: Union["Signals", DetectionContext]) -> bool:
    """
    Evaluate a rule against signals.

    Pure and total: unknown node types evaluate to False rather than
    raising. all/any short-circuit.
    """
    ctx = signals if isinstance(signals, DetectionContext) else build_context(signals)
    return _eval(rule, ctx)


def _eval(rule: Rule, ctx: DetectionContext) -> bool:
    if isinstance(rule, All):
        return all(_eval(r, ctx) for r in rule.rules)
    if isinstance(rule, AnyOf):
        return any(_eval(r, ctx) for r in rule.rules)
    if isinstance(rule, Not):
        return not _eval(rule.rule, ctx)

    if isinstance(rule, HeaderPresent):
        return rule.name.lower() in ctx.headers
    if isinstance(rule, HeaderEquals):
        value = ctx.headers.get(rule.name.lower())
        return value is not None and value == rule.value.strip().lower()
    if isinstance(rule, HeaderIncludes):
        value = ctx.headers.get(rule.name.lower())
        return value is not None and rule.substr.lower() in value

    if isinstance(rule, MxSuffix):
        return _any_suffix(ctx.mx, rule.suffix)
    if isinstance(rule, MxRegex):
        return _any_regex(ctx.mx, rule)
    if isinstance(rule, NsSuffix):
        return _any_suffix(ctx.ns, rule.suffix)
    if isinstance(rule, NsRegex):
        return _any_regex(ctx.ns, rule)

    if isinstance(rule, IssuerIncludes):
        return bool(ctx.issuer) and rule.substr.lower() in ctx.issuer
    if isinstance(rule, IssuerEquals):
        return bool(ctx.issuer) and ctx.issuer == rule.value.strip().lower()
    if isinstance(rule, RegistrarIncludes):
        return bool(ctx.registrar) and rule.substr.lower() in ctx.registrar
    if isinstance(rule, RegistrarEquals):
        return bool(ctx.registrar) and ctx.registrar == rule.value.strip().lower()

    return False
