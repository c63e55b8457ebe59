import pytest

from vespasearch import settings as settings_module
from vespasearch.errors import ConfigError
from vespasearch.http import build_ssl_context
from vespasearch.ingestion import SourceMirror
from vespasearch.settings import AppSettings, load_settings


def test_grouped_toml_is_flattened(tmp_path, monkeypatch) -> None:
    config = tmp_path / "custom.toml"
    config.write_text(
        """
[workspace]
data_dir = "/srv/vespasearch"

[vespa]
endpoint = "https://vespa.test"
document_endpoint = ""
hits = 25

[retry]
max_retries = 7

[mirror]
org = "mirrors"
token = "t0ken"
""",
        encoding="utf-8",
    )
    monkeypatch.setenv("VESPASEARCH_CONFIG_PATH", str(config))

    loaded = load_settings()

    assert str(loaded.data_dir) == "/srv/vespasearch"
    assert loaded.vespa_endpoint == "https://vespa.test"
    assert loaded.document_endpoint == "https://vespa.test"
    assert loaded.vespa_hits == 25
    assert loaded.retry_max_retries == 7
    assert loaded.mirror_enabled


def test_flatten_ignores_unknown_sections() -> None:
    flattened = settings_module._flatten_config(
        {"vespa": {"endpoint": "http://v", "unknown": 1}, "other": {"x": 1}}
    )
    assert flattened == {"vespa_endpoint": "http://v"}


def test_derived_paths(tmp_path) -> None:
    cfg = AppSettings(data_dir=tmp_path)
    assert cfg.registry_path == tmp_path / "data" / "registry.json"
    assert cfg.repos_path == tmp_path / "repos"
    assert cfg.summary_base == cfg.embedding_api_base


def test_tls_requires_cert_and_key(tmp_path) -> None:
    cfg = AppSettings(data_dir=tmp_path, vespa_client_cert="-----BEGIN CERTIFICATE-----\\nabc")
    with pytest.raises(ConfigError):
        build_ssl_context(cfg)


def test_tls_disabled_by_default(tmp_path) -> None:
    assert build_ssl_context(AppSettings(data_dir=tmp_path)) is None


def test_mirror_needs_token(tmp_path) -> None:
    assert SourceMirror.from_settings(AppSettings(data_dir=tmp_path)) is None
    with pytest.raises(ConfigError):
        SourceMirror.from_settings(AppSettings(data_dir=tmp_path, mirror_org="mirrors"))
