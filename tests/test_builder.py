import asyncio
import base64
import json

import httpx
import pytest

from bethub.builder import BuilderConfig, BuilderSigner, BuilderSigningError
from bethub.settings import Settings
from bethub.signing import ApiCreds, sign_request

SECRET = base64.b64encode(bytes(range(32))).decode("ascii")
CREDS = ApiCreds(key="builder-key-123", secret=SECRET, passphrase="builder-pass")


def test_config_from_settings_prefers_local_credentials() -> None:
    settings = Settings(
        POLY_BUILDER_API_KEY="builder-key-123",
        POLY_BUILDER_SECRET=SECRET,
        POLY_BUILDER_PASSPHRASE="builder-pass",
        POLY_SIGNING_SERVER_URL="https://signer.test/sign",
    )
    config = BuilderConfig.from_settings(settings)
    assert config.mode == "local"
    assert config.creds == CREDS
    assert config.key_prefix() == "builder-..."


def test_config_from_settings_remote_and_none() -> None:
    remote = BuilderConfig.from_settings(
        Settings(
            POLY_BUILDER_API_KEY="",
            POLY_BUILDER_SECRET="",
            POLY_BUILDER_PASSPHRASE="",
            POLY_SIGNING_SERVER_URL="https://signer.test/sign",
            POLY_SIGNING_SERVER_TOKEN="tok",
        )
    )
    assert remote.mode == "remote"
    assert remote.remote_url == "https://signer.test/sign"
    assert remote.remote_token == "tok"

    none = BuilderConfig.from_settings(
        Settings(
            POLY_BUILDER_API_KEY="",
            POLY_BUILDER_SECRET="",
            POLY_BUILDER_PASSPHRASE="",
            POLY_SIGNING_SERVER_URL="",
        )
    )
    assert none.mode == "none"
    assert none.key_prefix() is None


def test_local_headers_sign_with_builder_secret() -> None:
    signer = BuilderSigner(BuilderConfig(mode="local", creds=CREDS))
    try:
        headers = signer.local_headers(
            method="POST",
            request_path="/order",
            body='{"a":1}',
            timestamp=1700000000,
        )
    finally:
        asyncio.run(signer.aclose())

    assert headers == {
        "POLY_BUILDER_API_KEY": "builder-key-123",
        "POLY_BUILDER_SIGNATURE": sign_request(SECRET, "1700000000", "POST", "/order", '{"a":1}'),
        "POLY_BUILDER_TIMESTAMP": "1700000000",
        "POLY_BUILDER_PASSPHRASE": "builder-pass",
    }


def test_none_mode_returns_no_headers() -> None:
    signer = BuilderSigner(BuilderConfig())
    try:
        headers = asyncio.run(signer.headers(method="POST", request_path="/order"))
    finally:
        asyncio.run(signer.aclose())
    assert headers == {}
    assert signer.enabled() is False


def test_local_mode_requires_complete_credentials() -> None:
    with pytest.raises(BuilderSigningError):
        BuilderSigner(BuilderConfig(mode="local", creds=ApiCreds(key="k", secret="", passphrase="p")))
    with pytest.raises(BuilderSigningError):
        BuilderSigner(BuilderConfig(mode="remote"))


def test_remote_mode_posts_request_and_returns_headers() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers.get("Authorization")
        captured["payload"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "POLY_BUILDER_API_KEY": "k",
                "POLY_BUILDER_SIGNATURE": "sig",
                "POLY_BUILDER_TIMESTAMP": "1700000000",
                "POLY_BUILDER_PASSPHRASE": "p",
            },
        )

    signer = BuilderSigner(
        BuilderConfig(mode="remote", remote_url="https://signer.test/sign", remote_token="tok"),
        transport=httpx.MockTransport(handler),
    )
    try:
        headers = asyncio.run(signer.headers(method="POST", request_path="/order", body="{}"))
    finally:
        asyncio.run(signer.aclose())

    assert headers["POLY_BUILDER_SIGNATURE"] == "sig"
    assert captured["auth"] == "Bearer tok"
    assert captured["payload"] == {"method": "POST", "path": "/order", "body": "{}"}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"POLY_BUILDER_API_KEY": "k"}),
        httpx.Response(200, text="not json"),
    ],
)
def test_remote_mode_rejects_bad_responses(response: httpx.Response) -> None:
    signer = BuilderSigner(
        BuilderConfig(mode="remote", remote_url="https://signer.test/sign"),
        transport=httpx.MockTransport(lambda request: response),
    )
    try:
        with pytest.raises(BuilderSigningError):
            asyncio.run(signer.headers(method="POST", request_path="/order"))
    finally:
        asyncio.run(signer.aclose())
