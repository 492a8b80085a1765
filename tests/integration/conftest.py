from __future__ import annotations

import os
import urllib.request

import pytest

DEFAULT_ENDPOINT = "http://localhost:4566"


def _s3_ready(endpoint_url: str) -> bool:
    url = endpoint_url.rstrip("/") + "/_localstack/health"
    try:
        with urllib.request.urlopen(url, timeout=1.5) as resp:  # nosec B310
            if not 200 <= resp.status < 300:
                return False
            body = resp.read().decode("utf-8", "replace")
    except OSError:
        return False
    # Health lists every service; only S3 matters for the timetable cache.
    return '"s3"' in body


@pytest.fixture(scope="session", autouse=True)
def localstack_env() -> None:
    """Point boto3 at LocalStack unless the caller configured an endpoint."""

    os.environ.setdefault("USE_LOCALSTACK", "true")
    os.environ.setdefault("ENDPOINT_URL", DEFAULT_ENDPOINT)
    os.environ.setdefault("AWS_REGION", "eu-west-2")
    # LocalStack accepts any credentials, but boto3 insists on having some.
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")


@pytest.fixture(scope="session")
def require_localstack(localstack_env: None) -> str:
    endpoint_url = os.environ.get("ENDPOINT_URL", DEFAULT_ENDPOINT)
    if _s3_ready(endpoint_url):
        return endpoint_url

    msg = f"LocalStack S3 not reachable at {endpoint_url}"
    if os.getenv("CI") or os.getenv("REQUIRE_LOCALSTACK"):
        pytest.fail(msg, pytrace=False)
    pytest.skip(f"{msg}; skipping integration tests")
