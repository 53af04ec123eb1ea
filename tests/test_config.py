import pytest

from shclink.config import DEFAULT_PORT, ServiceConfig
from shclink.locations import data_prefix, parse_location, policy_location
from shclink.errors import InvalidRequest


def test_defaults():
    config = ServiceConfig()

    assert config.public_url == f"http://localhost:{DEFAULT_PORT}"
    assert config.namespace_root == "http://localhost:3000/shclinks"
    assert config.gnap_endpoint == "http://localhost:3000/gnap"
    assert config.token_ttl == 300
    assert config.freshness_window == 300
    assert config.pin_lockout_threshold == 5


def test_normalizes_urls():
    config = ServiceConfig(public_url="https://example.org/", links_path="links/")

    assert config.namespace_root == "https://example.org/links"


@pytest.mark.parametrize(
    "kwargs",
    [{"token_ttl": 0}, {"freshness_window": -1}, {"pin_lockout_threshold": 0}],
)
def test_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        ServiceConfig(**kwargs)


def test_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.delenv("PUBLIC_URL", raising=False)
    monkeypatch.setenv("SHCLINK_TOKEN_TTL", "60")
    monkeypatch.setenv("SHCLINK_PIN_LOCKOUT", "3")

    config = ServiceConfig.from_env(now_func=lambda: 42.0)

    assert config.public_url == "http://localhost:8080"
    assert config.token_ttl == 60
    assert config.pin_lockout_threshold == 3
    assert config.now() == 42.0


def test_from_env_public_url_wins(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("PUBLIC_URL", "https://links.example.org")

    assert ServiceConfig.from_env().public_url == "https://links.example.org"


def test_parse_location(config):
    policy = parse_location(config, policy_location(config, "key", "pkg"))
    assert (policy.client_id, policy.package_id, policy.kind, policy.file) == ("key", "pkg", "policy", None)

    data = parse_location(config, data_prefix(config, "key", "pkg") + "x.json")
    assert (data.kind, data.file) == ("data", "x.json")


@pytest.mark.parametrize(
    "suffix",
    ["key/pkg", "key/pkg/data/", "key/pkg/other", "key//policy", "key/pkg/data/a/b"],
)
def test_parse_location_rejects(config, suffix):
    with pytest.raises(InvalidRequest):
        parse_location(config, f"{config.namespace_root}/{suffix}")


def test_parse_location_rejects_foreign_root(config):
    with pytest.raises(InvalidRequest):
        parse_location(config, "https://elsewhere.example.org/shclinks/key/pkg/policy")
