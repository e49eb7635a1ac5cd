import pytest
from proxyrouter.core.errors import InvalidConfigShape
from proxyrouter.core.path_rewrite import PathRewrite, derive_path_rewrite


def test_derived_rewrite_for_route_with_leading_slash():
    rules = derive_path_rewrite("/api/proxy", "/github")
    assert rules == {"^/api/proxy/github/?": "/"}


@pytest.mark.parametrize("path_prefix, route", [
    ("/api/proxy", "/github"),
    ("/api/proxy", "github"),
    ("/api/proxy", "/github/"),
    ("/api/proxy/", "/github"),
    ("/api/proxy/", "github"),
])
def test_slash_joining_at_the_boundary(path_prefix, route):
    rewrite = PathRewrite(derive_path_rewrite(path_prefix, route))

    assert rewrite.apply("/api/proxy/github") == "/"
    assert rewrite.apply("/api/proxy/github/") == "/"
    assert rewrite.apply("/api/proxy/github/repos/x") == "/repos/x"


def test_remainder_is_left_untouched():
    rewrite = PathRewrite(derive_path_rewrite("/api/proxy", "/larger-example/v1"))
    assert rewrite.apply("/api/proxy/larger-example/v1/a/b.json") == "/a/b.json"


def test_literal_characters_in_route_are_not_regex():
    rewrite = PathRewrite(derive_path_rewrite("/api/proxy", "/svc.v1"))
    assert rewrite.apply("/api/proxy/svcXv1/a") == "/api/proxy/svcXv1/a"
    assert rewrite.apply("/api/proxy/svc.v1/a") == "/a"


def test_empty_prefix():
    rewrite = PathRewrite(derive_path_rewrite("", "/github"))
    assert rewrite.apply("/github/repos") == "/repos"


def test_first_matching_rule_wins():
    rewrite = PathRewrite({"^/a": "/first", "^/a/b": "/second"})
    assert rewrite.apply("/a/b/c") == "/first/b/c"


def test_unmatched_path_is_unchanged():
    rewrite = PathRewrite({"^/nope": "/"})
    assert rewrite.apply("/api/proxy/x") == "/api/proxy/x"


def test_invalid_pattern_is_a_config_error():
    with pytest.raises(InvalidConfigShape):
        PathRewrite({"^/a(": "/"})
