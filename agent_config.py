"""
Agent runtime configuration.

Mirrors the sections of the agent's TOML config file. The bootstrap flow
fills it from the device config and writes it to disk with save_config().
"""

import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Union

import tomli_w

from errors import MalformedEntityError
from records import from_mapping

__all__ = [
    "AgentConfig",
    "ChanConf",
    "EdgexConf",
    "HeartbeatConf",
    "LogConf",
    "MQTTConf",
    "MalformedEntityError",
    "ServerConf",
    "TerminalConf",
    "new_config",
    "save_config",
]

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "/configs/config.toml"


@dataclass
class ServerConf:
    nats_url: str = "nats://127.0.0.1:4222"
    port: str = "9999"


@dataclass
class ChanConf:
    control: str = ""
    data: str = ""


@dataclass
class EdgexConf:
    url: str = "http://localhost:48090/api/v1/"


@dataclass
class LogConf:
    level: str = "info"


@dataclass
class MQTTConf:
    url: str = "localhost:1883"
    username: str = ""
    password: str = ""
    mtls: bool = False
    skip_tls_ver: bool = True
    retain: bool = False
    qos: int = 0
    ca_path: str = "ca.crt"
    cert_path: str = "thing.cert"
    priv_key_path: str = "thing.key"
    ca_cert: str = ""
    client_cert: str = ""
    client_key: str = ""


@dataclass
class HeartbeatConf:
    # Duration string ("10s") or nanoseconds as served by the bootstrap service
    interval: Union[str, int] = "10s"


@dataclass
class TerminalConf:
    session_timeout: Union[str, int] = "60s"


@dataclass
class AgentConfig:
    server: ServerConf = field(default_factory=ServerConf)
    terminal: TerminalConf = field(default_factory=TerminalConf)
    heartbeat: HeartbeatConf = field(default_factory=HeartbeatConf)
    channels: ChanConf = field(default_factory=ChanConf)
    edgex: EdgexConf = field(default_factory=EdgexConf)
    log: LogConf = field(default_factory=LogConf)
    mqtt: MQTTConf = field(default_factory=MQTTConf)
    file: str = DEFAULT_CONFIG_FILE

    @classmethod
    def from_dict(cls, data: Dict) -> "AgentConfig":
        return from_mapping(
            cls,
            data,
            server=from_mapping(ServerConf, data.get("server")),
            terminal=from_mapping(TerminalConf, data.get("terminal")),
            heartbeat=from_mapping(HeartbeatConf, data.get("heartbeat")),
            channels=from_mapping(ChanConf, data.get("channels")),
            edgex=from_mapping(EdgexConf, data.get("edgex")),
            log=from_mapping(LogConf, data.get("log")),
            mqtt=from_mapping(MQTTConf, data.get("mqtt")),
        )

    def to_toml(self) -> Dict:
        """Return the TOML document for this config; the file path is not part of it."""
        doc = asdict(self)
        doc.pop("file")
        return doc


def new_config(
    server: ServerConf,
    channels: ChanConf,
    edgex: EdgexConf,
    log: LogConf,
    mqtt: MQTTConf,
    heartbeat: HeartbeatConf,
    terminal: TerminalConf,
    file: str,
) -> AgentConfig:
    return AgentConfig(
        server=server,
        terminal=terminal,
        heartbeat=heartbeat,
        channels=channels,
        edgex=edgex,
        log=log,
        mqtt=mqtt,
        file=file,
    )


def save_config(cfg: AgentConfig) -> None:
    """
    Write the agent config to cfg.file as TOML.

    The document is written to a temporary file next to the destination and
    moved into place, so readers never see a half-written config.

    Args:
        cfg: Agent configuration to persist

    Raises:
        OSError: If the file cannot be written
        TypeError: If a value cannot be encoded as TOML
    """
    path = Path(cfg.file)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = tomli_w.dumps(cfg.to_toml())

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except OSError:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise

    logger.info(f"Saved agent config to {path}")
