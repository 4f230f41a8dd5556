import re

import pytest

from inkwell.vars import (
    Delims,
    Vars,
    env_globals,
    is_truthy,
    merge_vars,
    parse_header,
    stringify,
)


def test_parse_header_reads_yaml_mapping():
    parsed, rejected = parse_header("title: Home\ntags: [a, b]\ndraft: false\n")
    assert parsed == {"title": "Home", "tags": ["a", "b"], "draft": False}
    assert rejected == []


def test_parse_header_falls_back_to_key_value_lines():
    # not valid YAML: a second colon in a plain scalar
    parsed, _ = parse_header("# comment\ntitle: Hello: World\n\nauthor: me\n")
    assert parsed == {"title": "Hello: World", "author": "me"}


def test_parse_header_rejects_non_mapping():
    with pytest.raises(ValueError):
        parse_header("just a sentence")
    with pytest.raises(ValueError):
        parse_header("- one\n- two\n")


def test_parse_header_empty_is_empty_vars():
    parsed, rejected = parse_header("")
    assert parsed == {}
    assert isinstance(parsed, Vars)
    assert rejected == []


def test_parse_header_drops_nonconforming_keys():
    parsed, rejected = parse_header("Title: X\ngood_key: y\n2fast: z\nURI_PATH: nope\n")
    assert parsed == {"good_key": "y"}
    assert rejected == ["Title", "2fast", "URI_PATH"]


def test_merge_vars_later_layers_win():
    merged = merge_vars({"a": 1, "b": 1}, None, {"b": 2, "c": 2}, {"c": 3})
    assert merged == {"a": 1, "b": 2, "c": 3}
    assert isinstance(merged, Vars)


def test_env_globals_strips_prefix_and_delims():
    environ = {
        "INK_SITE_NAME": "Docs",
        "INK_LDELIM": "[[",
        "INK_": "empty",
        "HOME": "/home/x",
    }
    assert env_globals(environ) == {"site_name": "Docs"}
    assert env_globals({"X_A": "1"}, prefix="X_") == {"a": "1"}


def test_delims_default_and_override():
    assert Vars().delims() == Delims()
    assert Vars().delims().is_default
    custom = Vars(ldelim="[[", rdelim="]]").delims()
    assert custom == Delims("[[", "]]")
    assert not custom.is_default
    # an empty override falls back to the default
    assert Vars(ldelim="", rdelim="]]").delims() == Delims("{{", "]]")


def test_clear_and_without_delims():
    scope = Vars(ldelim="<%", rdelim="%>", title="t")
    clone = scope.without_delims()
    assert clone == {"title": "t"}
    assert "ldelim" in scope
    scope.clear_delims()
    assert scope == {"title": "t"}


def test_truthiness_and_stringify():
    assert is_truthy(True)
    assert is_truthy("yes")
    assert is_truthy(" TRUE ")
    assert is_truthy("1")
    assert is_truthy(1)
    assert not is_truthy("no")
    assert not is_truthy("false")
    assert not is_truthy(None)
    assert stringify(None) == ""
    assert stringify(True) == "true"
    assert stringify(3) == "3"
    assert Vars(flag=False).get_str("flag") == "false"
    assert Vars().get_str("missing", "dflt") == "dflt"


def test_pretty_print_aligns_and_excludes(capsys):
    scope = Vars(title="A", description="long", SRCDIR="/x", WATCHMODE="enabled")
    scope.pretty_print(
        nonconforming=["Bad"], exclude=re.compile(r"DIR$|WATCHMODE"), color=False
    )
    out = capsys.readouterr().out
    assert "  description: long" in out
    assert "        title: A" in out
    assert "SRCDIR" not in out
    assert "WATCHMODE" not in out
    assert "WARNING: ignored non-conforming key `Bad`" in out
