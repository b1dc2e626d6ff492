"""
Unit tests for the detection rule evaluator.

Covers signal normalisation, leaf predicates and combinators.
"""
import re

import pytest

from domainlens.providers.models import DnsRecord, Header, Signals
from domainlens.providers.rules import (
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
    build_context,
    compile_pattern,
    evaluate,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def signals():
    """Signals for a site on Cloudflare with Google mail."""
    return Signals(
        headers=[
            Header("Server", "cloudflare"),
            Header("CF-RAY", "8a1b2c3d4e5f-AMS"),
            Header("X-Served-By", "cache-ams21"),
            Header("x-served-by", "cache-fra19"),
        ],
        dns_records=[
            DnsRecord("NS", "example.com", "NS1.Cloudflare.com."),
            DnsRecord("NS", "example.com", "ns2.cloudflare.com"),
            DnsRecord("MX", "example.com", "10 ASPMX.L.GOOGLE.COM."),
            DnsRecord("MX", "example.com", "alt1.aspmx.l.google.com", priority=20),
            DnsRecord("A", "example.com", "104.16.0.1"),
        ],
        cert_issuer="Let's Encrypt R11",
        registrar="NameCheap, Inc.",
    )


@pytest.fixture
def empty_signals():
    return Signals()


# =============================================================================
# Normalisation Tests
# =============================================================================

class TestBuildContext:
    """Tests for signal normalisation."""

    def test_header_names_and_values_are_lowercased(self, signals):
        ctx = build_context(signals)
        assert ctx.headers["server"] == "cloudflare"
        assert "cf-ray" in ctx.headers

    def test_repeated_header_last_value_wins(self, signals):
        ctx = build_context(signals)
        assert ctx.headers["x-served-by"] == "cache-fra19"

    def test_hosts_lose_trailing_dot_and_case(self, signals):
        ctx = build_context(signals)
        assert ctx.ns == ("ns1.cloudflare.com", "ns2.cloudflare.com")

    def test_mx_priority_prefix_is_dropped(self, signals):
        ctx = build_context(signals)
        assert ctx.mx == ("aspmx.l.google.com", "alt1.aspmx.l.google.com")

    def test_other_record_types_are_ignored(self, signals):
        ctx = build_context(signals)
        assert "104.16.0.1" not in ctx.mx + ctx.ns

    def test_issuer_and_registrar_are_lowercased(self, signals):
        ctx = build_context(signals)
        assert ctx.issuer == "let's encrypt r11"
        assert ctx.registrar == "namecheap, inc."


# =============================================================================
# Leaf Predicate Tests
# =============================================================================

class TestLeafPredicates:
    """Tests for individual predicates."""

    def test_header_present_is_case_insensitive(self, signals):
        assert evaluate(HeaderPresent("cf-ray"), signals)
        assert evaluate(HeaderPresent("Cf-Ray"), signals)
        assert not evaluate(HeaderPresent("x-vercel-id"), signals)

    def test_header_equals(self, signals):
        assert evaluate(HeaderEquals("server", "Cloudflare"), signals)
        assert not evaluate(HeaderEquals("server", "cloud"), signals)
        assert not evaluate(HeaderEquals("x-missing", "cloudflare"), signals)

    def test_header_includes(self, signals):
        assert evaluate(HeaderIncludes("x-served-by", "cache-"), signals)
        assert not evaluate(HeaderIncludes("x-served-by", "ams21"), signals)

    def test_ns_suffix_matches_on_label_boundary(self, signals):
        assert evaluate(NsSuffix("cloudflare.com"), signals)
        assert evaluate(NsSuffix("ns1.cloudflare.com"), signals)
        assert evaluate(NsSuffix("CLOUDFLARE.COM."), signals)

    def test_ns_suffix_rejects_partial_label(self):
        lookalike = Signals(dns_records=[DnsRecord("NS", "x.com", "ns1.notcloudflare.com")])
        assert not evaluate(NsSuffix("cloudflare.com"), lookalike)

    def test_mx_suffix(self, signals):
        assert evaluate(MxSuffix("aspmx.l.google.com"), signals)
        assert evaluate(MxSuffix("google.com"), signals)
        assert not evaluate(MxSuffix("outlook.com"), signals)

    def test_mx_regex_uses_search_and_ignores_case(self, signals):
        rule = MxRegex(r"ALT\d+\.aspmx", compiled=compile_pattern(r"ALT\d+\.aspmx"))
        assert evaluate(rule, signals)

    def test_regex_without_precompiled_pattern_still_works(self, signals):
        assert evaluate(NsRegex(r"^ns\d\.cloudflare\.com$"), signals)

    def test_invalid_uncompiled_regex_is_false(self, signals):
        assert not evaluate(NsRegex(r"([unclosed"), signals)

    def test_issuer_predicates(self, signals):
        assert evaluate(IssuerIncludes("Let's Encrypt"), signals)
        assert evaluate(IssuerEquals("let's encrypt r11"), signals)
        assert not evaluate(IssuerEquals("r11"), signals)

    def test_registrar_predicates(self, signals):
        assert evaluate(RegistrarIncludes("namecheap"), signals)
        assert evaluate(RegistrarEquals("Namecheap, Inc."), signals)
        assert not evaluate(RegistrarEquals("namecheap"), signals)

    def test_empty_signals_match_nothing(self, empty_signals):
        assert not evaluate(HeaderPresent("server"), empty_signals)
        assert not evaluate(MxSuffix("google.com"), empty_signals)
        assert not evaluate(IssuerIncludes(""), empty_signals)
        assert not evaluate(RegistrarIncludes("x"), empty_signals)


# =============================================================================
# Combinator Tests
# =============================================================================

class TestCombinators:
    """Tests for all / any / not."""

    def test_all(self, signals):
        assert evaluate(All((HeaderPresent("cf-ray"), NsSuffix("cloudflare.com"))), signals)
        assert not evaluate(All((HeaderPresent("cf-ray"), NsSuffix("vercel-dns.com"))), signals)

    def test_any(self, signals):
        assert evaluate(AnyOf((HeaderPresent("x-vercel-id"), HeaderPresent("cf-ray"))), signals)
        assert not evaluate(AnyOf((HeaderPresent("x-vercel-id"), HeaderPresent("x-nf-request-id"))), signals)

    def test_not(self, signals):
        assert evaluate(Not(HeaderPresent("x-vercel-id")), signals)
        assert not evaluate(Not(HeaderPresent("cf-ray")), signals)

    def test_empty_all_is_true_and_empty_any_is_false(self, empty_signals):
        assert evaluate(All(()), empty_signals)
        assert not evaluate(AnyOf(()), empty_signals)

    def test_nested(self, signals):
        rule = All((
            AnyOf((HeaderEquals("server", "vercel"), HeaderEquals("server", "cloudflare"))),
            Not(MxSuffix("outlook.com")),
        ))
        assert evaluate(rule, signals)

    def test_evaluate_accepts_prebuilt_context(self, signals):
        ctx = build_context(signals)
        assert evaluate(NsSuffix("cloudflare.com"), ctx)


# =============================================================================
# Pattern Compilation Tests
# =============================================================================

class TestCompilePattern:

    def test_always_case_insensitive(self):
        assert compile_pattern("abc").flags & re.IGNORECASE

    def test_known_flags(self):
        compiled = compile_pattern("a.b", "ims")
        assert compiled.flags & re.MULTILINE
        assert compiled.flags & re.DOTALL

    def test_no_op_flags_are_accepted(self):
        compile_pattern("abc", "guy")

    def test_unknown_flag_raises(self):
        with pytest.raises(ValueError):
            compile_pattern("abc", "x")

    def test_bad_pattern_raises(self):
        with pytest.raises(re.error):
            compile_pattern("(unclosed")
