"""
Configuration Fetcher for the Mainflux agent
Fetches a device's configuration from the bootstrap service over HTTPS
and decodes it into a DeviceConfig.
"""

import json
import logging
import os
import ssl
from http import HTTPStatus
from typing import Union

import requests

from device_config import DeviceConfig
from errors import FetchError

REQUEST_TIMEOUT = 10  # seconds

logger = logging.getLogger(__name__)


def system_ca_bundle() -> Union[str, bool]:
    """
    Locate the system root certificate bundle.

    Returns:
        Path to the system CA file or directory, or True to fall back to
        the bundle shipped with requests when the system store is missing
    """
    paths = ssl.get_default_verify_paths()
    for candidate in (paths.cafile, paths.capath):
        if candidate and os.path.exists(candidate):
            return candidate

    logger.error("System root certificate pool unavailable, using bundled CA certificates")
    return True


def normalize_content_string(body: bytes) -> bytes:
    """
    Work around the bootstrap service serializing `content` as an escaped
    JSON string instead of an object.

    This is a textual fix for that one server quirk, not JSON unescaping:
    drop every backslash, then unquote object braces. Order matters.
    """
    text = body.decode("utf-8")
    text = text.replace("\\", "")
    text = text.replace('"{', "{")
    text = text.replace('}"', "}")
    return text.encode("utf-8")


def fetch_device_config(
    device_id: str,
    device_key: str,
    base_url: str,
    skip_tls: bool = False,
    timeout: float = REQUEST_TIMEOUT,
) -> DeviceConfig:
    """
    Fetch the device configuration from the bootstrap service.

    Args:
        device_id: External ID of the device, appended to the URL
        device_key: External key, sent as the Authorization header
        base_url: Bootstrap endpoint
        skip_tls: Disable certificate verification (self-signed/test setups)
        timeout: Request timeout in seconds

    Returns:
        Decoded DeviceConfig

    Raises:
        requests.RequestException: On transport errors (DNS, connect, TLS)
        FetchError: If the service answers with status >= 400
        ValueError: If the body cannot be decoded into a DeviceConfig
    """
    verify = False if skip_tls else system_ca_bundle()
    url = f"{base_url}/{device_id}"

    response = requests.get(
        url,
        headers={"Authorization": device_key},
        verify=verify,
        timeout=timeout,
    )
    if response.status_code >= HTTPStatus.BAD_REQUEST:
        raise FetchError(response.status_code, _status_text(response))

    body = normalize_content_string(response.content)
    logger.debug(f"Bootstrap response: {body.decode('utf-8')}")

    return DeviceConfig.from_dict(json.loads(body))


def _status_text(response: requests.Response) -> str:
    try:
        return HTTPStatus(response.status_code).phrase
    except ValueError:
        return response.reason or f"HTTP {response.status_code}"
