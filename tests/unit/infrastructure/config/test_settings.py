from pathlib import Path

from prodcli.infrastructure.config import settings
from prodcli.infrastructure.config.settings import (
    get_api_token,
    get_base_url,
    get_cache_root,
    get_config,
    get_org_id,
    get_rate_limit_settings,
    load_configuration,
    set_config_for_testing,
)


def write_yaml(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_sources(tmp_path):
    load_configuration(config_file=tmp_path / "missing.yaml", env_file=tmp_path / "missing.env")
    assert get_config("anything", "fallback") == "fallback"
    assert get_base_url() == settings.DEFAULT_BASE_URL
    assert get_api_token() is None


def test_yaml_values_are_flattened(tmp_path):
    config_file = write_yaml(tmp_path / "config.yaml", "api:\n  token: yaml-token\n  org_id: 7\n")
    load_configuration(config_file=config_file, env_file=tmp_path / "missing.env")
    assert get_config("api.token") == "yaml-token"
    assert get_api_token() == "yaml-token"
    assert get_org_id() == "7"


def test_environment_beats_yaml(tmp_path, monkeypatch):
    config_file = write_yaml(tmp_path / "config.yaml", "rate_limit:\n  regular:\n    limit: 50\n")
    monkeypatch.setenv("RATE_LIMIT_REGULAR_LIMIT", "20")
    load_configuration(config_file=config_file, env_file=tmp_path / "missing.env")
    assert get_config("rate_limit.regular.limit") == 20


def test_test_config_beats_environment(monkeypatch):
    monkeypatch.setenv("PRODUCTIVE_ORG_ID", "from-env")
    set_config_for_testing({"productive_org_id": "from-test"})
    assert get_org_id() == "from-test"


def test_dotenv_does_not_override_environment(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("PRODUCTIVE_API_TOKEN=dotenv-token\nPRODUCTIVE_ORG_ID=99\n", encoding="utf-8")
    monkeypatch.setenv("PRODUCTIVE_API_TOKEN", "real-token")
    # Ensure load_dotenv's writes are undone after the test
    monkeypatch.setenv("PRODUCTIVE_ORG_ID", "")
    monkeypatch.delenv("PRODUCTIVE_ORG_ID")
    load_configuration(config_file=tmp_path / "missing.yaml", env_file=env_file)
    assert get_api_token() == "real-token"
    assert get_org_id() == "99"


def test_rate_limit_overrides():
    set_config_for_testing({"rate_limit.reports.limit": 3})
    limits = get_rate_limit_settings()
    assert limits["reports"]["limit"] == 3
    assert limits["reports"]["window_ms"] == 30_000
    assert limits["regular"]["limit"] == 100


def test_cache_root_precedence(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg"))
    assert get_cache_root() == tmp_path / "xdg" / "productive-cli"
    monkeypatch.setenv("PRODUCTIVE_CACHE_DIR", str(tmp_path / "explicit"))
    assert get_cache_root() == tmp_path / "explicit"
