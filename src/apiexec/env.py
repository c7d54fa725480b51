import os

from .types import (
    AuthStrategy,
    BearerFromCredential,
    ClientConfig,
    ClientSecretCredential,
    NoAuth,
    RetryConfig,
    StaticKey,
)


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                if key.startswith("export "):
                    key = key[len("export ") :].strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # a missing file just means no overrides
        pass
    return values


def read_env(env_path: str | None = None) -> dict[str, str]:
    """Environment lookup map; the real environment wins over the .env file."""
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def _key_from_env(env: dict[str, str], prefix: str) -> StaticKey | None:
    key = env.get(f"{prefix}API_KEY")
    if not key:
        return None
    placement = env.get(f"{prefix}API_KEY_IN", "header").strip().lower()
    if placement not in ("header", "query"):
        raise ValueError(f"{prefix}API_KEY_IN must be 'header' or 'query', got {placement!r}")
    return StaticKey(
        key=key,
        header_name=env.get(f"{prefix}API_KEY_HEADER") or "Ocp-Apim-Subscription-Key",
        placement=placement,
        fallback_key=env.get(f"{prefix}SECONDARY_API_KEY") or None,
    )


def _auth_from_env(env: dict[str, str], prefix: str) -> tuple[AuthStrategy, tuple[AuthStrategy, ...]]:
    """Primary strategy plus additional ones; a key next to an audience is sent alongside the bearer."""
    audience = env.get(f"{prefix}AUDIENCE")
    tenant = env.get(f"{prefix}TENANT_ID")
    client = env.get(f"{prefix}CLIENT_ID")
    secret = env.get(f"{prefix}CLIENT_SECRET")
    key = _key_from_env(env, prefix)
    if audience:
        if tenant and client and secret:
            bearer: AuthStrategy = ClientSecretCredential(
                audience=audience, tenant_id=tenant, client_id=client, secret=secret
            )
        else:
            bearer = BearerFromCredential(audience=audience)
        return bearer, (key,) if key is not None else ()
    if key is not None:
        return key, ()
    return NoAuth(), ()


def load_client_config_from_env(
    prefix: str = "API_",
    env_path: str | None = None,
    **kwargs,
) -> ClientConfig:
    """Create a ClientConfig from environment variables.

    Variables read (each prefixed with ``prefix``):
    - BASE_URL (required), PATH_PREFIX, MAX_RETRY_COUNT
    - AUDIENCE; with TENANT_ID + CLIENT_ID + CLIENT_SECRET a client secret credential
      is used, otherwise a bearer token from the ambient credential source; an API_KEY
      set as well is sent alongside it (additional_auth)
    - API_KEY, SECONDARY_API_KEY, API_KEY_HEADER, API_KEY_IN (header | query)

    If 'env_path' is provided, variables from the .env file augment lookups (without
    mutating the process environment). Values in the actual environment take precedence.

    kwargs override the resolved fields (e.g. retry=RetryConfig(...)).
    """
    env = read_env(env_path)
    base_url = env.get(f"{prefix}BASE_URL", "")
    retry = RetryConfig()
    raw_retries = env.get(f"{prefix}MAX_RETRY_COUNT")
    if raw_retries:
        try:
            retry = RetryConfig(max_attempts=int(raw_retries))
        except ValueError as e:
            raise ValueError(f"{prefix}MAX_RETRY_COUNT must be an integer") from e
    auth, additional_auth = _auth_from_env(env, prefix)
    fields = {
        "base_url": base_url,
        "path_prefix": env.get(f"{prefix}PATH_PREFIX") or None,
        "auth": auth,
        "additional_auth": additional_auth,
        "retry": retry,
    }
    fields.update(kwargs)
    config = ClientConfig(**fields)
    config.validate()
    return config
