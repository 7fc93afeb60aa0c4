# projecthub_client/config.py
# Environment-aware configuration for the ProjectHub API client

import os
from typing import Literal

# Environment detection - normalize to lowercase
_raw_env = os.environ.get("ENV", "local").lower()
ENV: Literal["local", "staging", "production"] = _raw_env if _raw_env in ("local", "staging", "production") else "production"  # type: ignore

IS_LOCAL = (ENV == "local")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "production")

IS_DEV = IS_LOCAL

DEFAULT_LOCAL_URL = "http://127.0.0.1:8000"

# Request timeout in seconds
REQUEST_TIMEOUT = int(os.environ.get("PROJECTHUB_TIMEOUT", "20"))


def validate_api_url(url: str, env: str) -> None:
    """
    Validate an API base URL for the environment.

    Raises:
        ValueError: empty URL, or a non-HTTPS / localhost URL outside local
    """
    if not url:
        raise ValueError("API base URL cannot be empty")

    if env in ("staging", "production"):
        if not url.startswith("https://"):
            raise ValueError(f"Production/staging must use HTTPS. Got: {url}")
        if "127.0.0.1" in url or "localhost" in url:
            raise ValueError(f"Production/staging cannot use localhost URLs. Got: {url}")


def get_api_base_url() -> str:
    """
    PROJECTHUB_API_URL if set (validated), else the local default when
    ENV is local.

    Raises:
        RuntimeError: staging/production with no configured URL
    """
    url = os.environ.get("PROJECTHUB_API_URL", "").strip().rstrip("/")
    if url:
        validate_api_url(url, ENV)
        return url

    if ENV == "local":
        return DEFAULT_LOCAL_URL

    raise RuntimeError(
        f"ProjectHub API URL not configured for {ENV.upper()} environment. "
        f"Set PROJECTHUB_API_URL (HTTPS, not localhost)."
    )
