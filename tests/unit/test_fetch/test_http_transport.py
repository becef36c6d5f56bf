"""Unit tests for the httpx transport and HTTP error classification."""

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from unittest.mock import MagicMock, patch

import httpx
import pytest

from ecs_client.auth.certificate import load_pkcs12
from ecs_client.auth.models import AuthMaterial
from ecs_client.fetch.models import ConfigRequest, RemoteCallError, RemoteErrorClass
from ecs_client.fetch.transport import (
    USER_AGENT,
    HttpxTransport,
    classify_http_error,
    parse_retry_after,
)
from ecs_client.models import ClientIdentity, Environment, RequestIdentifier


@pytest.fixture
def request_() -> ConfigRequest:
    """A request with agents, identifiers and flighting enabled."""
    return ConfigRequest(
        environment=Environment.PRODUCTION,
        identity=ClientIdentity(client="My Client", agents=("TeamA", "TeamB")),
        identifiers=(
            RequestIdentifier(name="Ring", values=("R0", "R1")),
            RequestIdentifier(name="Region", values=("eu",)),
        ),
        enable_exp=True,
        etag='"abc"',
    )


def mock_client(response: httpx.Response | None = None, error: Exception | None = None) -> MagicMock:
    """Mock httpx.Client usable as a context manager."""
    client = MagicMock()
    client.__enter__.return_value = client
    if error is not None:
        client.get.side_effect = error
    else:
        client.get.return_value = response
    return client


class TestRequestBuilding:
    """Tests for URL, params and header construction."""

    def test_url_quotes_client(self, request_: ConfigRequest) -> None:
        """Client names are path-quoted."""
        transport = HttpxTransport("https://ecs.example/", app_version="2.0")

        assert transport.build_url(request_) == "https://ecs.example/config/v1/My%20Client/2.0"

    def test_params(self, request_: ConfigRequest) -> None:
        """Agents comma-joined, identifier values repeated, flag last."""
        params = HttpxTransport("https://ecs.example").build_params(request_)

        assert params == [
            ("agents", "TeamA,TeamB"),
            ("Ring", "R0"),
            ("Ring", "R1"),
            ("Region", "eu"),
            ("enableExp", "true"),
        ]

    def test_params_minimal(self) -> None:
        """No agents and no flag means no params."""
        request = ConfigRequest(
            environment=Environment.PRODUCTION, identity=ClientIdentity(client="c")
        )

        assert HttpxTransport("https://ecs.example").build_params(request) == []

    def test_headers(self, request_: ConfigRequest) -> None:
        """Conditional and auth headers are attached."""
        headers = HttpxTransport("https://ecs.example").build_headers(
            request_, AuthMaterial.bearer("tok")
        )

        assert headers["User-Agent"] == USER_AGENT
        assert headers["If-None-Match"] == '"abc"'
        assert headers["Authorization"] == "Bearer tok"


class TestFetch:
    """Tests for HttpxTransport.fetch with a mocked client."""

    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_success(self, mock_cls: MagicMock, request_: ConfigRequest) -> None:
        """A 200 yields the document and ETag."""
        mock_cls.return_value = mock_client(
            httpx.Response(200, content=b'{"TeamA": {}}', headers={"ETag": '"v2"'})
        )

        response = HttpxTransport("https://ecs.example").fetch(request_, AuthMaterial(), 5.0)

        assert response.document == '{"TeamA": {}}'
        assert response.etag == '"v2"'
        assert response.not_modified is False
        assert mock_cls.call_args[1] == {"timeout": 5.0, "verify": True}

    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_not_modified(self, mock_cls: MagicMock, request_: ConfigRequest) -> None:
        """A 304 is a successful confirmation without document."""
        mock_cls.return_value = mock_client(httpx.Response(304, headers={"ETag": '"abc"'}))

        response = HttpxTransport("https://ecs.example").fetch(request_, AuthMaterial(), 5.0)

        assert response.not_modified is True
        assert response.document is None

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (401, RemoteErrorClass.AUTH_REJECTED),
            (403, RemoteErrorClass.AUTH_REJECTED),
            (404, RemoteErrorClass.HTTP_4XX),
            (500, RemoteErrorClass.HTTP_5XX),
            (503, RemoteErrorClass.HTTP_5XX),
        ],
    )
    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_error_status(
        self,
        mock_cls: MagicMock,
        status: int,
        expected: RemoteErrorClass,
        request_: ConfigRequest,
    ) -> None:
        """Non-success statuses raise classified errors."""
        mock_cls.return_value = mock_client(httpx.Response(status))

        with pytest.raises(RemoteCallError) as exc_info:
            HttpxTransport("https://ecs.example").fetch(request_, AuthMaterial(), 5.0)

        assert exc_info.value.error.error_class == expected
        assert exc_info.value.error.status_code == status

    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_empty_body_invalid(self, mock_cls: MagicMock, request_: ConfigRequest) -> None:
        """A 200 with an empty body is an invalid response."""
        mock_cls.return_value = mock_client(httpx.Response(200, content=b"  "))

        with pytest.raises(RemoteCallError) as exc_info:
            HttpxTransport("https://ecs.example").fetch(request_, AuthMaterial(), 5.0)

        assert exc_info.value.error.error_class == RemoteErrorClass.INVALID_RESPONSE

    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_non_utf8_body_invalid(self, mock_cls: MagicMock, request_: ConfigRequest) -> None:
        """Undecodable bodies are invalid responses."""
        mock_cls.return_value = mock_client(httpx.Response(200, content=b"\xff\xfe\xfa"))

        with pytest.raises(RemoteCallError) as exc_info:
            HttpxTransport("https://ecs.example").fetch(request_, AuthMaterial(), 5.0)

        assert exc_info.value.error.error_class == RemoteErrorClass.INVALID_RESPONSE

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (httpx.ReadTimeout("timed out"), RemoteErrorClass.NETWORK_TIMEOUT),
            (httpx.ConnectError("refused"), RemoteErrorClass.CONNECTION_ERROR),
            (httpx.RemoteProtocolError("garbage"), RemoteErrorClass.UNKNOWN),
        ],
    )
    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_network_errors(
        self,
        mock_cls: MagicMock,
        error: Exception,
        expected: RemoteErrorClass,
        request_: ConfigRequest,
    ) -> None:
        """httpx exceptions are classified."""
        mock_cls.return_value = mock_client(error=error)

        with pytest.raises(RemoteCallError) as exc_info:
            HttpxTransport("https://ecs.example").fetch(request_, AuthMaterial(), 5.0)

        assert exc_info.value.error.error_class == expected

    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_client_certificate_uses_ssl_context(
        self, mock_cls: MagicMock, request_: ConfigRequest, pfx_bytes: bytes
    ) -> None:
        """Certificate material produces a cached SSL context."""
        pem = load_pkcs12(pfx_bytes).to_pem()
        mock_cls.return_value = mock_client(httpx.Response(200, content=b"{}"))
        transport = HttpxTransport("https://ecs.example")
        auth = AuthMaterial(client_certificate_pem=pem)

        transport.fetch(request_, auth, 5.0)
        transport.fetch(request_, auth, 5.0)

        first = mock_cls.call_args_list[0][1]["verify"]
        second = mock_cls.call_args_list[1][1]["verify"]
        assert first is not True
        assert first is second

    @patch("ecs_client.fetch.transport.httpx.Client")
    def test_unusable_client_certificate(
        self, mock_cls: MagicMock, request_: ConfigRequest
    ) -> None:
        """A PEM the TLS layer cannot load is an SSL failure before any call."""
        transport = HttpxTransport("https://ecs.example")
        auth = AuthMaterial(client_certificate_pem=b"not a certificate")

        with pytest.raises(RemoteCallError) as exc_info:
            transport.fetch(request_, auth, 5.0)

        assert exc_info.value.error.error_class == RemoteErrorClass.SSL_ERROR
        mock_cls.assert_not_called()


class TestClassifyHttpError:
    """Tests for classify_http_error."""

    def test_success_is_none(self) -> None:
        """2xx is not an error."""
        assert classify_http_error(200, {}) is None
        assert classify_http_error(204, {}) is None

    def test_rate_limited_reads_retry_after(self) -> None:
        """429 carries the Retry-After seconds."""
        error = classify_http_error(429, httpx.Headers({"Retry-After": "12"}))

        assert error is not None
        assert error.error_class == RemoteErrorClass.RATE_LIMITED
        assert error.retry_after == 12

    def test_unexpected_status(self) -> None:
        """Other statuses are unknown."""
        error = classify_http_error(302, {})

        assert error is not None
        assert error.error_class == RemoteErrorClass.UNKNOWN


class TestParseRetryAfter:
    """Tests for parse_retry_after."""

    def test_seconds(self) -> None:
        """Integer seconds."""
        assert parse_retry_after("30") == 30

    def test_http_date(self) -> None:
        """HTTP dates become remaining seconds."""
        future = datetime.now(UTC) + timedelta(seconds=120)

        result = parse_retry_after(format_datetime(future, usegmt=True))

        assert result is not None
        assert 100 <= result <= 120

    def test_past_date_is_zero(self) -> None:
        """Past dates clamp to zero."""
        past = datetime.now(UTC) - timedelta(hours=1)

        assert parse_retry_after(format_datetime(past, usegmt=True)) == 0

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_unparseable(self, value: str | None) -> None:
        """Missing or garbage values yield None."""
        assert parse_retry_after(value) is None
