import base64
import json
from urllib.parse import parse_qs, urlsplit

import pytest

from dstasks.api import (
    APP_VERSION,
    ApiClient,
    make_finger,
    parse_check_version_reply,
    parse_report_reply,
    system_info,
)
from dstasks.models import Version

HOST = "http://service.example.com"

INFO_KEYS = {
    "bootUniqueId",
    "buildAbi",
    "buildCpuArchitecture",
    "currentCpuArchitecture",
    "kernelType",
    "kernelVersion",
    "machineHostName",
    "machineUniqueId",
    "prettyProductName",
    "productType",
    "productVersion",
}


def _query(url):
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


def test_make_finger_pinned():
    assert make_finger("a", "b") == "YS1i"


def test_make_finger_round_trip():
    finger = make_finger("主机", "abc-123")
    assert base64.b64decode(finger).decode("utf-8") == "主机-abc-123"


def test_system_info_keys():
    info = system_info()
    assert set(info) == INFO_KEYS
    assert all(isinstance(value, str) for value in info.values())


def test_parse_check_version_success():
    body = json.dumps(
        {
            "code": 1000,
            "msg": "ok",
            "data": {
                "version": "1.5",
                "pubdate": "2023.3.16",
                "updateContent": "fixes",
                "url": "http://download.example.com/ds",
            },
        }
    ).encode("utf-8")
    state, msg, version = parse_check_version_reply(body)
    assert state is True
    assert msg == "ok"
    assert version == Version(1.5, "2023.3.16", "fixes", "http://download.example.com/ds")


def test_parse_check_version_other_code():
    body = json.dumps({"code": 1001, "msg": "当前是最新版本", "data": {"version": "9"}})
    state, msg, version = parse_check_version_reply(body)
    assert (state, msg) == (False, "当前是最新版本")
    assert version == Version()


def test_parse_check_version_bad_version_number():
    body = json.dumps({"code": 1000, "msg": "", "data": {"version": "new"}})
    state, _, version = parse_check_version_reply(body)
    assert state is True
    assert version.version == 0.0


def test_parse_check_version_invalid_json():
    state, msg, version = parse_check_version_reply(b"{not json")
    assert state is False
    assert msg
    assert version == Version()


def test_parse_check_version_non_object():
    assert parse_check_version_reply("[1, 2]") == (False, "", Version())


def test_parse_report_reply():
    assert parse_report_reply(json.dumps({"code": 1000, "msg": "done"})) == (True, "done")
    assert parse_report_reply(json.dumps({"code": 500, "msg": "bad"})) == (False, "bad")
    assert parse_report_reply(json.dumps({"code": "1000", "msg": 3})) == (False, "")


def test_parse_report_reply_invalid_json():
    state, msg = parse_report_reply("")
    assert state is False
    assert msg


def test_check_version_url_carries_params():
    client = ApiClient(HOST, finger="Zm9vLWJhcg==")
    url = client.check_version_url({"kernelType": "linux", "productType": "a b"})
    assert url.startswith(HOST + "/checkVersion?")
    assert _query(url) == {
        "version": APP_VERSION,
        "finger": "Zm9vLWJhcg==",
        "kernelType": "linux",
        "productType": "a b",
    }


def test_heartbeat_url():
    client = ApiClient(HOST + "/", app_version="2.0", finger="f+/=")
    url = client.heartbeat_url(7)
    assert url.startswith(HOST + "/reportHeart?")
    assert _query(url) == {"version": "2.0", "finger": "f+/=", "count": "7"}


def test_check_version_uses_fetch():
    seen = []

    def fetch(url):
        seen.append(url)
        return json.dumps({"code": 1000, "msg": "ok", "data": {"version": "1.4"}}).encode()

    client = ApiClient(HOST, finger="xyz", fetch=fetch)
    state, msg, version = client.check_version()
    assert (state, msg, version.version) == (True, "ok", 1.4)
    assert len(seen) == 1
    query = _query(seen[0])
    assert query["finger"] == "xyz"
    assert INFO_KEYS - {"bootUniqueId", "machineUniqueId"} <= set(query)


def test_check_version_network_error():
    def fetch(url):
        raise OSError("connection refused")

    client = ApiClient(HOST, fetch=fetch)
    assert client.check_version() == (False, "connection refused", Version())


def test_report_heart():
    seen = []

    def fetch(url):
        seen.append(url)
        return b'{"code": 1000, "msg": "ok"}'

    client = ApiClient(HOST, finger="abc", fetch=fetch)
    assert client.report_heart(3) == (True, "ok")
    assert _query(seen[0])["count"] == "3"


@pytest.mark.parametrize("error", [OSError("down"), TimeoutError("down")])
def test_report_heart_network_error(error):
    def fetch(url):
        raise error

    client = ApiClient(HOST, fetch=fetch)
    assert client.report_heart(1) == (False, "down")