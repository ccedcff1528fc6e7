"""Client for the update and heartbeat service, and device fingerprints."""

from __future__ import annotations

import base64
import json
import logging
import platform
import socket
import sys
import urllib.request
from pathlib import Path
from typing import Any, Callable, Mapping
from urllib.parse import urlencode

from dstasks.models import Version

log = logging.getLogger(__name__)

APP_VERSION = "1.3"
SUCCESS_CODE = 1000

Fetch = Callable[[str], bytes]

_BOOT_ID_FILE = Path("/proc/sys/kernel/random/boot_id")
_MACHINE_ID_FILES = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))


def make_finger(host_name: str, unique_id: str) -> str:
    """Return the device fingerprint: base64 of "<host>-<unique id>"."""
    return base64.b64encode(f"{host_name}-{unique_id}".encode("utf-8")).decode("ascii")


def _read_first(paths: tuple[Path, ...]) -> str:
    for path in paths:
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError:
            continue
    return ""


def system_info() -> dict[str, str]:
    """Describe this machine with the fields the service expects."""
    machine = platform.machine()
    system = platform.system().lower()
    return {
        "bootUniqueId": _read_first((_BOOT_ID_FILE,)),
        "buildAbi": f"{machine}-{sys.byteorder}_endian",
        "buildCpuArchitecture": machine,
        "currentCpuArchitecture": machine,
        "kernelType": system,
        "kernelVersion": platform.release(),
        "machineHostName": socket.gethostname(),
        "machineUniqueId": _read_first(_MACHINE_ID_FILES),
        "prettyProductName": platform.platform(),
        "productType": system,
        "productVersion": platform.version(),
    }


def _json_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _json_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def _to_float(text: str) -> float:
    try:
        return float(text.strip())
    except ValueError:
        return 0.0


def _load_object(body: bytes | str) -> tuple[dict[str, Any] | None, str]:
    """Decode a reply body; return the object (or None) and an error message."""
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return None, str(exc)
    return (document if isinstance(document, dict) else {}), ""


def parse_check_version_reply(body: bytes | str) -> tuple[bool, str, Version]:
    """Read a version check reply: (success, message, latest version)."""
    reply, error = _load_object(body)
    version = Version()
    if reply is None:
        return False, error, version
    msg = _json_string(reply.get("msg"))
    if _json_int(reply.get("code")) != SUCCESS_CODE:
        return False, msg, version
    data = reply.get("data")
    if not isinstance(data, dict):
        data = {}
    version.version = _to_float(_json_string(data.get("version")))
    version.pubdate = _json_string(data.get("pubdate"))
    version.update_content = _json_string(data.get("updateContent"))
    version.url = _json_string(data.get("url"))
    return True, msg, version


def parse_report_reply(body: bytes | str) -> tuple[bool, str]:
    """Read a report reply: (success, message)."""
    reply, error = _load_object(body)
    if reply is None:
        return False, error
    msg = _json_string(reply.get("msg"))
    return _json_int(reply.get("code")) == SUCCESS_CODE, msg


class ApiClient:
    """Talks to the service that announces versions and collects heartbeats."""

    def __init__(
        self,
        host: str,
        app_version: str = APP_VERSION,
        finger: str = "",
        fetch: Fetch | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.host = host.rstrip("/")
        self.app_version = app_version
        self.finger = finger
        self.timeout = timeout
        self._fetch = fetch or self._urlopen

    def _urlopen(self, url: str) -> bytes:
        with urllib.request.urlopen(url, timeout=self.timeout) as response:
            return response.read()

    def check_version_url(self, info: Mapping[str, str]) -> str:
        """Build the version check URL carrying the fingerprint and machine info."""
        params = {"version": self.app_version, "finger": self.finger, **info}
        return f"{self.host}/checkVersion?{urlencode(params)}"

    def heartbeat_url(self, count: int) -> str:
        """Build the heartbeat URL for the given report count."""
        params = {"version": self.app_version, "finger": self.finger, "count": count}
        return f"{self.host}/reportHeart?{urlencode(params)}"

    def check_version(self) -> tuple[bool, str, Version]:
        """Ask the service for the latest version."""
        try:
            body = self._fetch(self.check_version_url(system_info()))
        except OSError as exc:
            log.warning("check_version failed: %s", exc)
            return False, str(exc), Version()
        state, msg, version = parse_check_version_reply(body)
        log.debug("check_version state=%s, msg=%s", state, msg)
        return state, msg, version

    def report_heart(self, count: int) -> tuple[bool, str]:
        """Send a heartbeat and return the service's answer."""
        try:
            body = self._fetch(self.heartbeat_url(count))
        except OSError as exc:
            log.warning("report_heart failed: %s", exc)
            return False, str(exc)
        state, msg = parse_report_reply(body)
        log.debug("report_heart state=%s, msg=%s", state, msg)
        return state, msg