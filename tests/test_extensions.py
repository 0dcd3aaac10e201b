"""
Tests for SAN argument parsing and the OpenSSL extension config rendering.
"""
from __future__ import annotations

from issuer.extensions import ExtensionPlan, parse_san_argument


def test_parse_san_argument_keeps_order_and_duplicates():
    assert parse_san_argument("b.example.com,a.example.com,b.example.com") == [
        "b.example.com",
        "a.example.com",
        "b.example.com",
    ]


def test_parse_san_argument_trims_and_drops_empty():
    assert parse_san_argument(" a , ,b,") == ["a", "b"]


def test_parse_san_argument_empty():
    assert parse_san_argument(None) == []
    assert parse_san_argument("") == []


def test_san_entries_fqdn_first():
    plan = ExtensionPlan(fqdn="host.example.com", sans=["a", "b"])
    assert plan.san_entries == ["host.example.com", "a", "b"]


def test_extended_config_lists_dns_entries_in_order():
    config = ExtensionPlan(fqdn="host.example.com", sans=["a", "b"]).render_config()
    assert config is not None
    lines = config.splitlines()
    assert lines[0] == "[v3_req]"
    assert "subjectAltName = @alt_names" in lines
    alt = lines[lines.index("[alt_names]") + 1:]
    assert alt == ["DNS.1 = host.example.com", "DNS.2 = a", "DNS.3 = b"]


def test_extended_config_has_leaf_extensions_without_sans():
    config = ExtensionPlan(fqdn="host.example.com").render_config()
    assert config is not None
    assert "basicConstraints = critical, CA:FALSE" in config
    assert "keyUsage = critical, digitalSignature, keyEncipherment" in config
    assert "extendedKeyUsage = serverAuth, clientAuth" in config
    assert "subjectKeyIdentifier = hash" in config
    assert "authorityKeyIdentifier = keyid,issuer" in config
    assert config.rstrip().endswith("DNS.1 = host.example.com")


def test_basic_config_only_has_san():
    config = ExtensionPlan(fqdn="host.example.com", sans=["a"], profile="basic").render_config()
    assert config == (
        "[v3_req]\n"
        "subjectAltName = @alt_names\n"
        "\n"
        "[alt_names]\n"
        "DNS.1 = host.example.com\n"
        "DNS.2 = a\n"
    )


def test_basic_without_sans_has_no_config():
    plan = ExtensionPlan(fqdn="host.example.com", profile="basic")
    assert plan.is_empty
    assert plan.render_config() is None
