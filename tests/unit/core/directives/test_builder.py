from __future__ import annotations

"""
Unit tests for the Nginx Config Builder.

Verifies:
1. Leaf accumulation, keyed overwrite, soft defaults and clearing.
2. Block nesting with multiple same-named instances.
3. Raw text interleaving and mapping merges.
4. Rejection of malformed calls without partial mutation.
"""

import pytest

from potluck.core.directives import NginxConfig
from potluck.domain.directive_models import Flag, LeafEntry, Scalar
from potluck.domain.exceptions import InvalidDirectiveError

# -----------------------------------------------------------------------------
# CONSTRUCTION & CHAINING
# -----------------------------------------------------------------------------

def test_empty_builder_renders_nothing() -> None:
    """TC-01: Verify a fresh builder produces empty output."""
    config = NginxConfig()

    assert config.render() == ""
    assert str(config) == ""
    assert config.tree.is_empty()


def test_constructor_calls_body_with_builder() -> None:
    """TC-01: Verify the constructor body receives the builder itself."""
    received = []

    config = NginxConfig(lambda c: received.append(c))

    assert received == [config]


def test_modify_and_append_return_self() -> None:
    """TC-02: Verify chaining methods return the same builder."""
    config = NginxConfig()

    assert config.modify() is config
    assert config.modify(lambda c: c.add_leaf("charset", "UTF-8")) is config
    assert config.append("access_log off;\n") is config
    assert config.append({"gzip": "on"}) is config
    assert config.append(42) is config

    assert config.render() == "charset UTF-8;\naccess_log off;\ngzip on;\n"


# -----------------------------------------------------------------------------
# LEAF DIRECTIVES
# -----------------------------------------------------------------------------

def test_leaf_order_follows_first_introduction() -> None:
    """TC-03: Verify distinct directive names render in insertion order."""
    config = NginxConfig()
    config.add_leaf("charset", "UTF-8")
    config.add_leaf("access_log", "off")
    config.add_leaf("gzip", "on")
    config.add_leaf("charset", "latin1")

    assert config.render() == (
        "charset UTF-8;\n"
        "charset latin1;\n"
        "access_log off;\n"
        "gzip on;\n"
    )


def test_args_are_stringified_and_joined() -> None:
    """TC-03: Verify mixed argument types are joined with single spaces."""
    config = NginxConfig()
    config.add_leaf("listen", 8080, "default_server")
    config.add_leaf("keepalive_timeout", "  65  ")

    assert config.dig("listen") == "8080 default_server"
    assert config.dig("keepalive_timeout") == "65"


def test_repeated_keyed_directives_render_in_call_order() -> None:
    """TC-04: Verify two add_header calls with different keys produce two lines."""
    config = NginxConfig()
    config.add_leaf("add_header", "X-Content-Type-Options", "nosniff")
    config.add_leaf("add_header", "X-Frame-Options", "DENY")

    assert config.render() == (
        "add_header X-Content-Type-Options nosniff;\n"
        "add_header X-Frame-Options DENY;\n"
    )


def test_keyed_call_overwrites_in_place() -> None:
    """TC-05: Verify a repeated sub-key replaces the prior value at its position."""
    config = NginxConfig()
    config.add_leaf("add_header", "X-Content-Type-Options", "nosniff")
    config.add_leaf("add_header", "X-Frame-Options", "DENY")
    config.add_leaf("add_header", "X-Content-Type-Options", "sniff")

    assert config.dig("add_header") == [
        "X-Content-Type-Options sniff",
        "X-Frame-Options DENY",
    ]


def test_keyed_call_with_empty_value_deletes_only_that_key() -> None:
    """TC-05: Verify clearing a sub-key leaves the other values alone."""
    config = NginxConfig()
    config.add_leaf("add_header", "Referrer-Policy", "'same-origin' always")
    config.add_leaf("add_header", "X-Frame-Options", "'DENY' always")
    config.add_leaf("add_header", "Referrer-Policy", None)

    assert config.render() == "add_header X-Frame-Options 'DENY' always;\n"


def test_keyed_call_with_empty_value_and_unknown_key_is_noop() -> None:
    """TC-05: Verify an empty keyed call for a missing key changes nothing."""
    config = NginxConfig()
    config.add_leaf("add_header", "X-Frame-Options", "DENY")
    config.add_leaf("add_header", "Referrer-Policy", "")

    assert config.dig("add_header") == "X-Frame-Options DENY"


@pytest.mark.parametrize("empty", [None, ""])
def test_unkeyed_empty_value_clears_directive(empty) -> None:
    """TC-06: Verify a None/empty value removes the directive entirely."""
    config = NginxConfig()
    config.add_leaf("charset", "UTF-8")
    config.add_leaf("access_log", "off")
    config.add_leaf("charset", empty)

    assert config.render() == "access_log off;\n"
    assert config.tree.get("charset") is None
    assert config.dig("charset") is None


@pytest.mark.parametrize("empty", [None, ""])
def test_empty_value_on_fresh_name_is_ignored(empty) -> None:
    """TC-06: Verify an empty value never creates an entry."""
    config = NginxConfig()
    config.add_leaf("charset", empty)
    config.add_leaf("access_log", "off")

    assert config.render() == "access_log off;\n"
    assert config.tree.names() == ["access_log"]


def test_call_without_args_is_noop() -> None:
    """TC-06: Verify a call without any argument keeps existing values."""
    config = NginxConfig()
    config.add_leaf("charset", "UTF-8", soft=True)
    config.add_leaf("charset")

    assert config.dig("charset") == "UTF-8"


def test_cleared_directive_moves_to_end_when_re_added() -> None:
    """TC-06: Verify a removed directive is re-introduced at the end of the level."""
    config = NginxConfig()
    config.add_leaf("charset", "UTF-8")
    config.add_leaf("gzip", "on")
    config.add_leaf("charset", None)
    config.add_leaf("charset", "latin1")

    assert config.render() == "gzip on;\ncharset latin1;\n"


def test_soft_values_are_replaced_by_hard_value() -> None:
    """TC-07: Verify every soft value is discarded once a hard value arrives."""
    config = NginxConfig()
    config.add_leaf("access_log", "/first/access.log", soft=True)
    config.add_leaf("access_log", "/second/access.log", soft=True)

    assert config.dig("access_log") == ["/first/access.log", "/second/access.log"]

    config.add_leaf("access_log", "/third/access.log")

    entry = config.tree.get("access_log")
    assert isinstance(entry, LeafEntry)
    assert entry.values == [Scalar("/third/access.log")]


def test_soft_value_after_hard_value_is_appended() -> None:
    """TC-07: Verify a soft value joins existing hard values."""
    config = NginxConfig()
    config.add_leaf("add_header", "X-Content-Type-Options", "nosniff")
    config.add_leaf("add_header", "X-Frame-Options", "DENY", soft=True)

    assert config.render() == (
        "add_header X-Content-Type-Options nosniff;\n"
        "add_header X-Frame-Options DENY;\n"
    )


def test_hard_keyed_value_drops_unrelated_soft_values() -> None:
    """TC-07: Verify soft stripping applies regardless of the sub-key."""
    config = NginxConfig()
    config.add_leaf("add_header", "X-Content-Type-Options", "nosniff", soft=True)
    config.add_leaf("add_header", "X-Frame-Options", "DENY")

    assert config.render() == "add_header X-Frame-Options DENY;\n"


def test_soft_only_directive_cleared_by_empty_hard_call() -> None:
    """TC-07: Verify an empty hard call removes a soft-only directive."""
    config = NginxConfig()
    config.add_leaf("gzip", "on", soft=True)
    config.add_leaf("gzip", None)

    assert config.dig("gzip") is None


def test_flag_directive_renders_without_value() -> None:
    """TC-08: Verify a single True argument declares a value-less directive."""
    config = NginxConfig()
    with config.block("events"):
        config.add_leaf("multi_accept", True)

    assert config.render() == "events {\n  multi_accept;\n}\n"
    assert config.dig("events", 0, "multi_accept") is True
    assert config.tree.get("events").instances[0].get("multi_accept").values == [Flag()]


def test_booleans_and_none_stringify_inside_longer_values() -> None:
    """TC-08: Verify booleans only mean a flag when they are the sole argument."""
    config = NginxConfig()
    config.add_leaf("set", "$debug", False)
    config.add_leaf("set", "$verbose", True)

    assert config.dig("set") == ["$debug false", "$verbose true"]


# -----------------------------------------------------------------------------
# BLOCK DIRECTIVES
# -----------------------------------------------------------------------------

def test_nested_blocks_render_with_indentation() -> None:
    """TC-09: Verify nested blocks indent two spaces per level."""
    def body(c: NginxConfig) -> None:
        c.add_leaf("charset", "UTF-8")
        c.add_leaf("access_log", "off")
        c.add_block("location", "/", body=lambda c: (
            c.add_leaf("root", "www/public"),
            c.add_leaf("gzip_static", "on"),
        ))

    config = NginxConfig(lambda c: c.add_block("server", body=body))

    assert config.render() == (
        "server {\n"
        "  charset UTF-8;\n"
        "  access_log off;\n"
        "  location / {\n"
        "    root www/public;\n"
        "    gzip_static on;\n"
        "  }\n"
        "}\n"
    )


def test_block_without_index_targets_latest_instance() -> None:
    """TC-10: Verify implicit addressing reuses the most recent instance."""
    config = NginxConfig()
    config.add_block("server", body=lambda c: c.add_leaf("listen", "8080"))
    config.add_block("server", body=lambda c: c.add_leaf("server_name", "hello.world"))

    assert config.render() == (
        "server {\n"
        "  listen 8080;\n"
        "  server_name hello.world;\n"
        "}\n"
    )


def test_explicit_index_creates_and_addresses_instances() -> None:
    """TC-10: Verify indexed blocks stay independent from each other."""
    config = NginxConfig()
    config.add_block("server", body=lambda c: c.add_leaf("listen", "8080"))
    config.add_block("server", 1, body=lambda c: c.add_leaf("listen", "4433"))
    config.add_block("server", 0, body=lambda c: c.add_leaf("server_name", "hello.world"))

    assert config.render() == (
        "server {\n"
        "  listen 8080;\n"
        "  server_name hello.world;\n"
        "}\n"
        "server {\n"
        "  listen 4433;\n"
        "}\n"
    )


def test_mutating_one_instance_leaves_sibling_untouched() -> None:
    """TC-10: Verify block isolation between same-named instances."""
    config = NginxConfig()
    with config.block("server", 0):
        config.add_leaf("listen", "80")
    before = config.dig("server", 0, "listen")

    with config.block("server", 1):
        config.add_leaf("listen", "443")
        config.add_leaf("charset", "UTF-8")

    assert config.dig("server", 0, "listen") == before == "80"
    assert config.dig("server", 0, "charset") is None
    assert len(config.dig("server")) == 2


def test_out_of_range_index_appends_new_instance() -> None:
    """TC-10: Verify a large explicit index creates exactly one new instance."""
    config = NginxConfig()
    config.add_block("server", 5, body=lambda c: c.add_leaf("listen", "80"))

    assert len(config.dig("server")) == 1
    assert config.dig("server", 0, "listen") == "80"


def test_negative_index_addresses_from_the_end() -> None:
    """TC-10: Verify -1 reuses the last instance instead of adding one."""
    config = NginxConfig()
    config.add_block("server", body=lambda c: c.add_leaf("listen", "80"))
    config.add_block("server", body=lambda c: c.add_leaf("listen", "443"))
    config.add_block("server", -1, body=lambda c: c.add_leaf("charset", "UTF-8"))
    config.add_block("server", -2, body=lambda c: c.add_leaf("gzip", "on"))

    assert len(config.dig("server")) == 2
    assert config.render() == (
        "server {\n"
        "  listen 80;\n"
        "  gzip on;\n"
        "}\n"
        "server {\n"
        "  listen 443;\n"
        "  charset UTF-8;\n"
        "}\n"
    )


def test_negative_index_without_instances_creates_one() -> None:
    """TC-10: Verify a negative index on a new block creates its first instance."""
    config = NginxConfig()
    config.add_block("server", -1, body=lambda c: c.add_leaf("listen", "80"))

    assert config.render() == "server {\n  listen 80;\n}\n"


def test_qualifiers_form_context_label() -> None:
    """TC-11: Verify block qualifiers are joined to the name."""
    config = NginxConfig()
    with config.block("location", "~", r"\.php$"):
        config.add_leaf("return", "404")

    assert config.tree.names() == [r"location ~ \.php$"]
    assert config.render() == "location ~ \\.php$ {\n  return 404;\n}\n"


def test_block_context_restored_after_exception() -> None:
    """TC-12: Verify traversal returns to the parent level when a body raises."""
    config = NginxConfig()

    def failing(c: NginxConfig) -> None:
        c.add_leaf("listen", "80")
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        config.add_block("server", body=failing)

    config.add_leaf("charset", "UTF-8")

    assert config.dig("charset") == "UTF-8"
    assert config.dig("server", 0, "charset") is None


def test_empty_block_renders_braces() -> None:
    """TC-12: Verify a block opened without content is still emitted."""
    config = NginxConfig()
    config.add_block("events")

    assert config.render() == "events {\n}\n"


# -----------------------------------------------------------------------------
# RAW TEXT & MERGE
# -----------------------------------------------------------------------------

def test_raw_text_interleaves_with_directives() -> None:
    """TC-13: Verify raw text keeps its position and is re-indented."""
    config = NginxConfig()
    with config.block("server"):
        config.add_leaf("listen", "80")
        config.append_raw("if ($host = old) {\n  return 301 https://new;\n}")
        config.add_leaf("charset", "UTF-8")

    assert config.render() == (
        "server {\n"
        "  listen 80;\n"
        "  if ($host = old) {\n"
        "    return 301 https://new;\n"
        "  }\n"
        "  charset UTF-8;\n"
        "}\n"
    )


def test_append_string_content_at_root() -> None:
    """TC-13: Verify appended strings are emitted verbatim at the root."""
    config = NginxConfig()
    config.append("charset UTF-8;\n")
    config.append("access_log off;\n")

    assert config.render() == "charset UTF-8;\naccess_log off;\n"


def test_merge_round_trip_scenario() -> None:
    """TC-14: Verify a nested mapping renders as the equivalent builder calls."""
    config = NginxConfig()
    config.merge({"server": {"listen": "80", "location /": {"root": "/var/www"}}})

    assert config.render() == (
        "server {\n"
        "  listen 80;\n"
        "  location / {\n"
        "    root /var/www;\n"
        "  }\n"
        "}\n"
    )
    assert config.dig("server", 0, "location /", 0, "root") == "/var/www"


def test_merge_lists_and_raw_keys() -> None:
    """TC-14: Verify list values repeat a directive and raw keys insert text."""
    config = NginxConfig()
    config.append({
        "server": {
            "access_log": "off",
            "add_header": ["X-Content-Type-Options nosniff", "X-Frame-Options DENY"],
            "raw[0]": "return 404;",
        },
    })

    assert config.render() == (
        "server {\n"
        "  access_log off;\n"
        "  add_header X-Content-Type-Options nosniff;\n"
        "  add_header X-Frame-Options DENY;\n"
        "  return 404;\n"
        "}\n"
    )


def test_merge_into_existing_block_extends_it() -> None:
    """TC-14: Verify merging a mapping reuses the latest block instance."""
    config = NginxConfig()
    config.add_block("server", body=lambda c: c.add_leaf("listen", "80"))
    config.merge({"server": {"charset": "UTF-8", "listen": None}})

    assert config.render() == "server {\n  charset UTF-8;\n}\n"


# -----------------------------------------------------------------------------
# INVALID CALLS
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("name", ["", "   ", None, 42, "two words", "semi;colon", "new\nline"])
def test_invalid_leaf_names_raise(name) -> None:
    """TC-15: Verify malformed leaf names are rejected."""
    config = NginxConfig()

    with pytest.raises(InvalidDirectiveError):
        config.add_leaf(name, "value")

    assert config.tree.is_empty()


@pytest.mark.parametrize("name", ["_merge", "_level", "__init__"])
def test_reserved_names_raise_descriptive_error(name: str) -> None:
    """TC-15: Verify names addressing internal operations are refused."""
    config = NginxConfig()

    with pytest.raises(InvalidDirectiveError, match="reserved for internal use by NginxConfig"):
        config.add_leaf(name, "value")

    with pytest.raises(InvalidDirectiveError, match="reserved"):
        config.add_block(name)

    assert config.render() == ""


def test_leaf_name_used_by_block_raises() -> None:
    """TC-16: Verify an entry can never be both a leaf and a block."""
    config = NginxConfig()
    config.add_block("server")

    with pytest.raises(InvalidDirectiveError, match="already a block"):
        config.add_leaf("server", "x")

    config.add_leaf("charset", "UTF-8")
    with pytest.raises(InvalidDirectiveError, match="non-block"):
        config.add_block("charset")

    assert config.render() == "server {\n}\ncharset UTF-8;\n"


def test_non_scalar_values_raise() -> None:
    """TC-16: Verify containers are refused as leaf values."""
    config = NginxConfig()

    with pytest.raises(InvalidDirectiveError, match="not a scalar"):
        config.add_leaf("add_header", ["X-Frame-Options", "DENY"])


def test_invalid_merge_leaves_tree_untouched() -> None:
    """TC-16: Verify a mapping is validated in full before any mutation."""
    config = NginxConfig()
    config.add_leaf("charset", "UTF-8")

    with pytest.raises(InvalidDirectiveError):
        config.merge({
            "gzip": "on",
            "server": {"listen": "80", "bad name": "x"},
        })

    assert config.render() == "charset UTF-8;\n"


def test_merge_block_onto_existing_leaf_leaves_tree_untouched() -> None:
    """TC-16: Verify a mapping that turns an existing leaf into a block adds nothing."""
    config = NginxConfig()
    config.add_leaf("server", "x")

    with pytest.raises(InvalidDirectiveError, match="non-block"):
        config.merge({"gzip": "on", "server": {"listen": "80"}})

    assert config.render() == "server x;\n"


def test_merge_leaf_onto_nested_block_leaves_tree_untouched() -> None:
    """TC-16: Verify collisions inside the latest block instance are found first."""
    config = NginxConfig()
    with config.block("server"):
        config.add_block("location")
    before = config.render()

    with pytest.raises(InvalidDirectiveError, match="already a block"):
        config.merge({"server": {"listen": "80", "location": "x"}})

    assert config.render() == before


def test_merge_key_collision_within_mapping_raises() -> None:
    """TC-16: Verify two keys naming the same entry as leaf and block are refused."""
    config = NginxConfig()

    with pytest.raises(InvalidDirectiveError, match="non-block"):
        config.merge({"server": "x", "server ": {"listen": "80"}})

    assert config.render() == ""


def test_merge_cleared_leaf_may_become_block() -> None:
    """TC-16: Verify a leaf cleared earlier in the mapping no longer blocks a block."""
    config = NginxConfig()
    config.add_leaf("server", "x")

    config.merge({"server": None, "server ": {"listen": "80"}})

    assert config.render() == "server {\n  listen 80;\n}\n"


def test_invalid_directive_error_is_value_error() -> None:
    """TC-17: Verify generic ValueError handlers still catch builder errors."""
    with pytest.raises(ValueError):
        NginxConfig().add_leaf("", "x")
