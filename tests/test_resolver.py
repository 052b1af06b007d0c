"""Tests for the digest lookup with its legacy media-type retry."""

from __future__ import annotations

import base64
from unittest.mock import patch

import pytest
import requests
import responses

from registry_digest.registry.auth import Credentials, StaticCredentialStore
from registry_digest.registry.client import LEGACY_MANIFEST_MEDIA_TYPE, MANIFEST_MEDIA_TYPES
from registry_digest.registry.errors import (
    BadCredentials,
    ImageDigestError,
    NetworkError,
    RegistryError,
)
from registry_digest.registry.parser import ImageReference
from registry_digest.registry.resolver import (
    get_image_digest,
    retry_on_any_error,
    retry_on_negotiation_error,
)
from registry_digest.registry.transport import new_session

DIGEST = "sha256:" + "b" * 64
HUB_URL = "https://registry-1.docker.io/v2/library/alpine/manifests/latest"
PRIVATE_URL = "https://myregistry.com/v2/foo/bar/manifests/1.2"


class TestGetImageDigest:
    @responses.activate
    def test_docker_hub_official_image(self):
        responses.add(responses.GET, HUB_URL, headers={"Docker-Content-Digest": DIGEST})

        assert get_image_digest("alpine") == DIGEST
        assert len(responses.calls) == 1

    @responses.activate
    def test_accepts_normalized_reference(self):
        responses.add(responses.GET, PRIVATE_URL, headers={"Docker-Content-Digest": DIGEST})

        ref = ImageReference("myregistry.com", "foo/bar", "1.2")
        assert get_image_digest(ref) == DIGEST

    @responses.activate
    def test_ghcr_end_to_end(self):
        url = "https://ghcr.io/v2/foo/bar/manifests/v1"
        responses.add(responses.GET, url, headers={"Docker-Content-Digest": DIGEST})
        store = StaticCredentialStore({"ghcr.io": Credentials("user", "tokenPW")})

        assert get_image_digest("ghcr.io/foo/bar:v1", store) == DIGEST

        expected = "Bearer " + base64.b64encode(b"tokenPW").decode()
        assert responses.calls[0].request.headers["Authorization"] == expected

    @responses.activate
    def test_docker_hub_bearer_flow(self):
        responses.add(
            responses.GET,
            HUB_URL,
            status=401,
            headers={
                "WWW-Authenticate": 'Bearer realm="https://auth.docker.io/token",'
                'service="registry.docker.io",scope="repository:library/alpine:pull"'
            },
        )
        responses.add(responses.GET, "https://auth.docker.io/token", json={"token": "t0k"})
        responses.add(responses.GET, HUB_URL, body=b"{}")

        digest = get_image_digest("alpine:latest")

        assert digest == "sha256:44136fa355b3678a1146ad16f7e8649e94fb4fc21fe77e8310c060f61caaff8a"
        assert len(responses.calls) == 3


class TestLegacyFallback:
    @responses.activate
    def test_falls_back_to_legacy_media_type(self):
        responses.add(responses.GET, PRIVATE_URL, status=404)
        responses.add(responses.GET, PRIVATE_URL, headers={"Docker-Content-Digest": DIGEST})

        assert get_image_digest("myregistry.com/foo/bar:1.2") == DIGEST

        assert len(responses.calls) == 2
        assert responses.calls[0].request.headers["Accept"] == ", ".join(MANIFEST_MEDIA_TYPES)
        assert responses.calls[1].request.headers["Accept"] == LEGACY_MANIFEST_MEDIA_TYPE

    @responses.activate
    def test_second_error_is_surfaced(self):
        responses.add(responses.GET, PRIVATE_URL, status=401)
        responses.add(responses.GET, PRIVATE_URL, status=404)

        with pytest.raises(ImageDigestError) as excinfo:
            get_image_digest("myregistry.com/foo/bar:1.2")

        err = excinfo.value
        assert isinstance(err.error, RegistryError)
        assert err.__cause__ is err.error
        assert err.repository == "foo/bar"
        assert err.tag == "1.2"
        assert "foo/bar:1.2" in str(err)
        assert "404" in str(err)

    @responses.activate
    def test_network_error_still_retried_by_default(self):
        responses.add(
            responses.GET, PRIVATE_URL, body=requests.exceptions.ConnectionError("unreachable")
        )
        responses.add(responses.GET, PRIVATE_URL, headers={"Docker-Content-Digest": DIGEST})

        assert get_image_digest("myregistry.com/foo/bar:1.2") == DIGEST
        assert len(responses.calls) == 2

    @responses.activate
    def test_negotiation_policy_fails_fast_on_network_error(self):
        responses.add(
            responses.GET, PRIVATE_URL, body=requests.exceptions.ConnectionError("unreachable")
        )

        with pytest.raises(ImageDigestError) as excinfo:
            get_image_digest(
                "myregistry.com/foo/bar:1.2", retry_policy=retry_on_negotiation_error
            )

        assert isinstance(excinfo.value.error, NetworkError)
        assert len(responses.calls) == 1

    @responses.activate
    def test_each_attempt_does_its_own_handshake(self):
        challenge = {
            "WWW-Authenticate": 'Bearer realm="https://auth.example.com/token",'
            'service="myregistry.com",scope="repository:foo/bar:pull"'
        }
        responses.add(responses.GET, PRIVATE_URL, status=401, headers=challenge)
        responses.add(responses.GET, "https://auth.example.com/token", json={"token": "first"})
        responses.add(responses.GET, PRIVATE_URL, status=404)
        responses.add(responses.GET, PRIVATE_URL, status=401, headers=challenge)
        responses.add(responses.GET, "https://auth.example.com/token", json={"token": "second"})
        responses.add(responses.GET, PRIVATE_URL, headers={"Docker-Content-Digest": DIGEST})

        with patch(
            "registry_digest.registry.client.new_session", wraps=new_session
        ) as mock_new_session:
            assert get_image_digest("myregistry.com/foo/bar:1.2") == DIGEST

        assert mock_new_session.call_count == 2
        assert len(responses.calls) == 6
        # The legacy attempt starts without the first attempt's token.
        assert "Authorization" not in responses.calls[3].request.headers
        assert responses.calls[5].request.headers["Authorization"] == "Bearer second"

    @responses.activate
    def test_bad_credentials_both_attempts(self):
        responses.add(responses.GET, PRIVATE_URL, status=401)
        responses.add(responses.GET, PRIVATE_URL, status=401)
        store = StaticCredentialStore({"myregistry.com": Credentials("user", "wrong")})

        with pytest.raises(ImageDigestError) as excinfo:
            get_image_digest("myregistry.com/foo/bar:1.2", store)

        assert isinstance(excinfo.value.error, BadCredentials)
        assert len(responses.calls) == 2


class TestRetryPolicies:
    def test_any_error(self):
        assert retry_on_any_error(NetworkError("x"))
        assert retry_on_any_error(RegistryError("x"))

    def test_negotiation_error(self):
        assert not retry_on_negotiation_error(NetworkError("x"))
        assert retry_on_negotiation_error(RegistryError("x"))
        assert retry_on_negotiation_error(BadCredentials("x"))


class TestCredentialLookup:
    """Registry hosts from references match differently-spelled store keys."""

    @responses.activate
    def test_docker_io_reference(self):
        url = "https://docker.io/v2/myorg/private/manifests/1"
        responses.add(responses.GET, url, headers={"Docker-Content-Digest": DIGEST})
        store = StaticCredentialStore({"docker.io": Credentials("u", "p")})

        assert get_image_digest("docker.io/myorg/private:1", store) == DIGEST

        expected = "Basic " + base64.b64encode(b"u:p").decode()
        assert responses.calls[0].request.headers["Authorization"] == expected

    @responses.activate
    def test_mixed_case_host(self):
        url = "https://myreg.example.com/v2/foo/manifests/latest"
        responses.add(responses.GET, url, headers={"Docker-Content-Digest": DIGEST})
        store = StaticCredentialStore({"MyReg.example.com": Credentials("u", "p")})

        assert get_image_digest("MyReg.example.com/foo", store) == DIGEST

        expected = "Basic " + base64.b64encode(b"u:p").decode()
        assert responses.calls[0].request.headers["Authorization"] == expected
