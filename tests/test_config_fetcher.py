from types import SimpleNamespace

import pytest
import requests

import bootstrap
import config_fetcher
from errors import FetchError

QUIRKY_BODY = (
    rb'{"mainflux_id":"dev-1","mainflux_key":"key-1",'
    rb'"mainflux_channels":[{"id":"ch-1","metadata":{"type":"data"}},{"id":"ch-2"}],'
    rb'"client_cert":"CERT","client_key":"KEY","ca_cert":"CA",'
    rb'"content":"{\"agent\":{\"log\":{\"level\":\"debug\"}},\"export\":{\"file\":\"/tmp/export.toml\"}}"}'
)


class FakeResponse:
    def __init__(self, status_code=200, content=b"{}", reason="OK"):
        self.status_code = status_code
        self.content = content
        self.reason = reason


@pytest.fixture
def calls(monkeypatch):
    recorded = []
    responses = []

    def fake_get(url, **kwargs):
        recorded.append((url, kwargs))
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(config_fetcher.requests, "get", fake_get)
    monkeypatch.setattr(config_fetcher, "system_ca_bundle", lambda: "/etc/ssl/certs/ca.pem")
    return SimpleNamespace(recorded=recorded, responses=responses)


def test_normalize_turns_embedded_string_into_object():
    body = rb'{"content":"{\"agent\":{\"x\":1}}"}'
    assert config_fetcher.normalize_content_string(body) == b'{"content":{"agent":{"x":1}}}'


def test_normalize_leaves_plain_json_alone():
    body = b'{"content":{"agent":{"x":1}}}'
    assert config_fetcher.normalize_content_string(body) == body


def test_fetch_sends_device_id_and_key(calls):
    calls.responses.append(FakeResponse(content=QUIRKY_BODY))

    dc = config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs.example.com/things/bootstrap")

    url, kwargs = calls.recorded[0]
    assert url == "https://bs.example.com/things/bootstrap/dev-1"
    assert kwargs["headers"] == {"Authorization": "key-1"}
    assert kwargs["verify"] == "/etc/ssl/certs/ca.pem"
    assert kwargs["timeout"] == config_fetcher.REQUEST_TIMEOUT

    assert dc.mainflux_id == "dev-1"
    assert dc.mainflux_key == "key-1"
    assert [c.id for c in dc.mainflux_channels] == ["ch-1", "ch-2"]
    assert dc.mainflux_channels[0].metadata == {"type": "data"}
    assert dc.content.agent.log.level == "debug"
    assert dc.content.export.file == "/tmp/export.toml"


def test_fetch_skip_tls_disables_verification(calls):
    calls.responses.append(FakeResponse(content=b'{"mainflux_id":"dev-1"}'))

    config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs", skip_tls=True, timeout=3)

    _, kwargs = calls.recorded[0]
    assert kwargs["verify"] is False
    assert kwargs["timeout"] == 3


def test_fetch_error_status_carries_status_text(calls):
    calls.responses.append(FakeResponse(status_code=404, content=b"not json", reason="whatever"))

    with pytest.raises(FetchError) as excinfo:
        config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs")

    assert str(excinfo.value) == "Not Found"
    assert excinfo.value.status_code == 404


def test_fetch_unknown_error_status_uses_reason(calls):
    calls.responses.append(FakeResponse(status_code=499, reason="Client Closed Request"))

    with pytest.raises(FetchError, match="Client Closed Request"):
        config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs")


def test_fetch_transport_error_is_not_wrapped(calls):
    error = requests.ConnectionError("connection refused")
    calls.responses.append(error)

    with pytest.raises(requests.ConnectionError) as excinfo:
        config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs")

    assert excinfo.value is error


def test_fetch_invalid_json_raises_value_error(calls):
    calls.responses.append(FakeResponse(content=b"<html>oops</html>"))

    with pytest.raises(ValueError):
        config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs")


def test_fetch_wrong_shape_raises_value_error(calls):
    calls.responses.append(FakeResponse(content=b'{"mainflux_channels":{"id":"ch-1"}}'))

    with pytest.raises(ValueError):
        config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs")


def test_system_ca_bundle_falls_back_when_store_missing(monkeypatch, caplog):
    monkeypatch.setattr(
        config_fetcher.ssl,
        "get_default_verify_paths",
        lambda: SimpleNamespace(cafile=None, capath="/nonexistent/certs"),
    )

    with caplog.at_level("ERROR", logger="config_fetcher"):
        assert config_fetcher.system_ca_bundle() is True

    assert "root certificate pool unavailable" in caplog.text


def test_system_ca_bundle_prefers_system_file(monkeypatch, tmp_path):
    cafile = tmp_path / "ca.pem"
    cafile.write_text("certs")
    monkeypatch.setattr(
        config_fetcher.ssl,
        "get_default_verify_paths",
        lambda: SimpleNamespace(cafile=str(cafile), capath=None),
    )

    assert config_fetcher.system_ca_bundle() == str(cafile)


def test_fetch_non_utf8_body_raises_value_error(calls):
    calls.responses.append(FakeResponse(content=b'{"mainflux_id":"\xff\xfe"}'))

    with pytest.raises(UnicodeDecodeError):
        config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs")


def test_fetch_scalar_export_routes_raises_value_error(calls):
    calls.responses.append(
        FakeResponse(content=b'{"mainflux_channels":[{"id":"a"},{"id":"b"}],"content":{"export":{"routes":5}}}')
    )

    with pytest.raises(ValueError, match="routes"):
        config_fetcher.fetch_device_config("dev-1", "key-1", "https://bs")


def test_malformed_export_routes_fall_back_to_local_config(calls, monkeypatch, tmp_path):
    body = b'{"mainflux_channels":[{"id":"a"},{"id":"b"}],"content":{"export":{"routes":true}}}'
    calls.responses.extend([FakeResponse(content=body), FakeResponse(content=body)])
    monkeypatch.setattr(bootstrap.time, "sleep", lambda seconds: None)
    cfg = bootstrap.Config(url="https://bs", device_id="dev-1", device_key="key-1", retries="2", retry_delay_sec="0")

    result = bootstrap.bootstrap(cfg, str(tmp_path / "config.toml"))

    assert result.status is bootstrap.BootstrapStatus.FALLBACK_TO_LOCAL
    assert isinstance(result.error, ValueError)
    assert len(calls.recorded) == 2
    assert not (tmp_path / "config.toml").exists()
