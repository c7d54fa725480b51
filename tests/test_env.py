import pytest

from apiexec import (
    BearerFromCredential,
    ClientSecretCredential,
    NoAuth,
    RetryConfig,
    StaticKey,
    load_client_config_from_env,
)
from apiexec.env import read_env

P = "APIEXEC_TEST_"


def test_static_key_from_env(monkeypatch):
    monkeypatch.setenv(f"{P}BASE_URL", "https://api.test")
    monkeypatch.setenv(f"{P}API_KEY", "primary")
    monkeypatch.setenv(f"{P}SECONDARY_API_KEY", "secondary")
    monkeypatch.setenv(f"{P}API_KEY_HEADER", "code")
    monkeypatch.setenv(f"{P}API_KEY_IN", "QUERY")
    cfg = load_client_config_from_env(prefix=P)
    assert cfg.base_url == "https://api.test"
    assert cfg.auth == StaticKey("primary", header_name="code", placement="query", fallback_key="secondary")


def test_audience_selects_bearer(monkeypatch):
    monkeypatch.setenv(f"{P}BASE_URL", "https://api.test")
    monkeypatch.setenv(f"{P}AUDIENCE", "api://orders")
    cfg = load_client_config_from_env(prefix=P)
    assert cfg.auth == BearerFromCredential("api://orders")
    assert cfg.additional_auth == ()


def test_audience_with_api_key_sends_both(monkeypatch):
    monkeypatch.setenv(f"{P}BASE_URL", "https://api.test")
    monkeypatch.setenv(f"{P}AUDIENCE", "api://orders")
    monkeypatch.setenv(f"{P}API_KEY", "sub-key")
    monkeypatch.setenv(f"{P}SECONDARY_API_KEY", "sub-key-2")
    cfg = load_client_config_from_env(prefix=P)
    assert cfg.auth == BearerFromCredential("api://orders")
    assert cfg.additional_auth == (StaticKey("sub-key", fallback_key="sub-key-2"),)


def test_client_secret_triple(monkeypatch):
    monkeypatch.setenv(f"{P}BASE_URL", "https://api.test")
    monkeypatch.setenv(f"{P}AUDIENCE", "api://orders")
    monkeypatch.setenv(f"{P}TENANT_ID", "t")
    monkeypatch.setenv(f"{P}CLIENT_ID", "c")
    monkeypatch.setenv(f"{P}CLIENT_SECRET", "s")
    cfg = load_client_config_from_env(prefix=P)
    assert cfg.auth == ClientSecretCredential("api://orders", "t", "c", "s")


def test_env_file_and_precedence(monkeypatch, tmp_path):
    envp = tmp_path / ".env"
    envp.write_text(
        "# service settings\n"
        f"export {P}BASE_URL='https://from-file.test'\n"
        f'{P}PATH_PREFIX="/v1"\n'
        f"{P}MAX_RETRY_COUNT=5\n"
        "\n"
        "not a pair\n"
    )
    cfg = load_client_config_from_env(prefix=P, env_path=str(envp))
    assert cfg.base_url == "https://from-file.test"
    assert cfg.base_endpoint == "https://from-file.test/v1"
    assert cfg.retry.max_attempts == 5  # noqa: PLR2004
    assert cfg.auth == NoAuth()

    monkeypatch.setenv(f"{P}BASE_URL", "https://from-env.test")
    cfg2 = load_client_config_from_env(prefix=P, env_path=str(envp))
    assert cfg2.base_url == "https://from-env.test"


def test_missing_env_file_is_ignored(monkeypatch, tmp_path):
    monkeypatch.setenv(f"{P}BASE_URL", "https://api.test")
    cfg = load_client_config_from_env(prefix=P, env_path=str(tmp_path / "nope.env"))
    assert cfg.base_url == "https://api.test"
    assert read_env(str(tmp_path / "nope.env"))[f"{P}BASE_URL"] == "https://api.test"


def test_kwargs_override(monkeypatch):
    monkeypatch.setenv(f"{P}BASE_URL", "https://api.test")
    monkeypatch.setenv(f"{P}MAX_RETRY_COUNT", "9")
    cfg = load_client_config_from_env(prefix=P, retry=RetryConfig(max_attempts=1), path_prefix="v3")
    assert cfg.retry.max_attempts == 1
    assert cfg.base_endpoint == "https://api.test/v3"


def test_invalid_values(monkeypatch):
    with pytest.raises(ValueError):
        load_client_config_from_env(prefix="APIEXEC_UNSET_")

    monkeypatch.setenv(f"{P}BASE_URL", "https://api.test")
    monkeypatch.setenv(f"{P}MAX_RETRY_COUNT", "lots")
    with pytest.raises(ValueError):
        load_client_config_from_env(prefix=P)

    monkeypatch.setenv(f"{P}MAX_RETRY_COUNT", "2")
    monkeypatch.setenv(f"{P}API_KEY", "k")
    monkeypatch.setenv(f"{P}API_KEY_IN", "cookie")
    with pytest.raises(ValueError):
        load_client_config_from_env(prefix=P)
