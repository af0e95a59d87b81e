#!/usr/bin/env python3
"""
Bootstrap for the Mainflux agent
Requests the device configuration from the bootstrap service with bounded
retry, translates it into the agent config and saves it, and seeds the
export service config if it does not exist yet.

When the service cannot be reached the device keeps running on its local
configuration.
"""

import enum
import logging
import os
import re
import sys
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple

import requests
from dotenv import load_dotenv

import agent_config
import export_config
from agent_config import AgentConfig, ChanConf
from config_fetcher import REQUEST_TIMEOUT, fetch_device_config
from device_config import Channel, DeviceConfig
from errors import BootstrapError, FetchError, InvalidSettingError, MalformedEntityError
from export_config import ExportConfig

ENV_FILE_PATH = ".env"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

DEFAULT_BOOTSTRAP_URL = "http://localhost:8202/things/bootstrap"
DEFAULT_RETRIES = "5"
DEFAULT_RETRY_DELAY = "10"  # seconds
DEFAULT_LOG_LEVEL = "info"

RETRIES_VAR = "MF_AGENT_BOOTSTRAP_RETRIES"
RETRY_DELAY_VAR = "MF_AGENT_BOOTSTRAP_RETRY_DELAY_SECONDS"

MAX_UINT64 = 2**64 - 1

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    """Parameters for bootstrapping, supplied once by the caller."""

    url: str
    device_id: str
    device_key: str
    retries: str = DEFAULT_RETRIES
    retry_delay_sec: str = DEFAULT_RETRY_DELAY
    skip_tls: bool = False
    timeout: float = REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            url=os.getenv("MF_AGENT_BOOTSTRAP_URL", DEFAULT_BOOTSTRAP_URL),
            device_id=os.getenv("MF_AGENT_BOOTSTRAP_ID", ""),
            device_key=os.getenv("MF_AGENT_BOOTSTRAP_KEY", ""),
            retries=os.getenv(RETRIES_VAR, DEFAULT_RETRIES),
            retry_delay_sec=os.getenv(RETRY_DELAY_VAR, DEFAULT_RETRY_DELAY),
            skip_tls=_env_flag("MF_AGENT_BOOTSTRAP_SKIP_TLS"),
            timeout=float(os.getenv("MF_AGENT_BOOTSTRAP_TIMEOUT", REQUEST_TIMEOUT)),
        )


class BootstrapStatus(enum.Enum):
    SKIPPED = "skipped"
    CONFIGURED = "configured"
    FALLBACK_TO_LOCAL = "fallback_to_local"


@dataclass
class BootstrapResult:
    """
    Outcome of a bootstrap run that did not fail.

    SKIPPED and FALLBACK_TO_LOCAL both mean the local config stays in use;
    `error` holds the last fetch error for the latter.
    """

    status: BootstrapStatus
    agent_config: Optional[AgentConfig] = None
    error: Optional[Exception] = None

    @property
    def configured(self) -> bool:
        return self.status is BootstrapStatus.CONFIGURED

    @property
    def fell_back(self) -> bool:
        return self.status is BootstrapStatus.FALLBACK_TO_LOCAL


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in ("1", "true", "yes", "on")


def parse_uint(value: str, name: str, maximum: int = MAX_UINT64) -> int:
    """
    Parse a base-10 unsigned integer setting.

    Raises:
        InvalidSettingError: If value is not made of ASCII digits only or exceeds maximum
    """
    if not re.fullmatch(r"[0-9]+", value or "") or int(value) > maximum:
        raise InvalidSettingError(f"Invalid {name} value: {value!r}")
    return int(value)


def bootstrap(cfg: Config, file: str) -> BootstrapResult:
    """
    Retrieve the device config and save it as the agent config.

    Args:
        cfg: Bootstrap parameters
        file: Destination path of the agent config file

    Returns:
        BootstrapResult; a failed fetch is not an error, the result says
        the local config is kept

    Raises:
        InvalidSettingError: If retries or retry delay cannot be parsed
        MalformedEntityError: If the fetched config has fewer than two channels
        OSError: If the agent config cannot be written
    """
    retries = parse_uint(cfg.retries, RETRIES_VAR)
    retry_delay_sec = parse_uint(cfg.retry_delay_sec, RETRY_DELAY_VAR, int(threading.TIMEOUT_MAX))

    if retries == 0:
        logger.info("No bootstrapping, environment variables and local config will be used")
        return BootstrapResult(BootstrapStatus.SKIPPED)

    logger.info(f"Requesting config for {cfg.device_id} from {cfg.url}")

    dc: Optional[DeviceConfig] = None
    for attempt in range(1, retries + 1):
        try:
            dc = fetch_device_config(cfg.device_id, cfg.device_key, cfg.url, cfg.skip_tls, cfg.timeout)
            break
        except (requests.RequestException, FetchError, ValueError) as e:
            logger.error(f"Fetching bootstrap failed with error: {e}")
            logger.debug(f"Retries remaining: {retries - attempt}. Retrying in {retry_delay_sec} seconds")
            time.sleep(retry_delay_sec)
            if attempt == retries:
                logger.warning("Retries exhausted")
                logger.info("Continuing with local config")
                return BootstrapResult(BootstrapStatus.FALLBACK_TO_LOCAL, error=e)

    seed_export_config(dc.content.export)

    if len(dc.mainflux_channels) < 2:
        raise MalformedEntityError(
            f"Device config must have control and data channels, got {len(dc.mainflux_channels)}"
        )

    ac = translate(dc, file)
    save_agent_config(ac)
    return BootstrapResult(BootstrapStatus.CONFIGURED, agent_config=ac)


def select_channels(channels: Tuple[Channel, Channel]) -> ChanConf:
    """
    Pick the control and data channels out of the first two channels.

    A channel whose metadata has type "data" in first position swaps the
    roles. Without that marker the first channel carries control traffic
    and the second carries data.
    """
    first, second = channels[0], channels[1]
    if first.is_data():
        return ChanConf(control=second.id, data=first.id)
    return ChanConf(control=first.id, data=second.id)


def translate(dc: DeviceConfig, file: str) -> AgentConfig:
    """
    Build the agent config from a fetched device config.

    MQTT credentials always come from the device config, whatever the
    nested agent MQTT section says.
    """
    agent = dc.content.agent

    mc = replace(
        agent.mqtt,
        username=dc.mainflux_id,
        password=dc.mainflux_key,
        client_cert=dc.client_cert,
        client_key=dc.client_key,
        ca_cert=dc.ca_cert,
    )

    return agent_config.new_config(
        agent.server,
        select_channels((dc.mainflux_channels[0], dc.mainflux_channels[1])),
        agent.edgex,
        agent.log,
        mc,
        agent.heartbeat,
        agent.terminal,
        file,
    )


def save_agent_config(cfg: AgentConfig) -> None:
    agent_config.save_config(cfg)


def seed_export_config(econf: ExportConfig) -> None:
    """
    Save the export config unless a file already exists at its path.

    An existing export config is authoritative. Failing to write is logged
    and never aborts bootstrap.
    """
    if not econf.file:
        econf.file = export_config.DEFAULT_EXPORT_CONFIG_FILE

    if os.path.exists(econf.file):
        logger.info(f"Export config file {econf.file} exists")
        return

    logger.info(f"Saving export config file {econf.file}")
    try:
        export_config.save(econf)
    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Failed to save export config file {e}")


def setup_logging(level: str = DEFAULT_LOG_LEVEL, log_file: Optional[str] = None) -> None:
    handler: logging.Handler
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler()

    logging.basicConfig(
        level=LOG_LEVELS.get(level.lower(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[handler],
    )


def main() -> int:
    """
    Main execution flow:
    1. Load the env file, without overriding the real environment
    2. Configure logging
    3. Bootstrap the agent config

    Returns:
        Process exit code
    """
    load_dotenv(os.getenv("MF_AGENT_ENV_FILE", ENV_FILE_PATH))
    setup_logging(os.getenv("MF_AGENT_LOG_LEVEL", DEFAULT_LOG_LEVEL), os.getenv("MF_AGENT_LOG_FILE"))

    config_file = os.getenv("MF_AGENT_CONFIG_FILE", agent_config.DEFAULT_CONFIG_FILE)

    try:
        cfg = Config.from_env()
        result = bootstrap(cfg, config_file)
    except (BootstrapError, OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to bootstrap: {e}")
        return 1

    logger.info(f"Bootstrap finished: {result.status.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
