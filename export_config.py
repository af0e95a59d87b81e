"""
Export service configuration.

The export service owns this file; bootstrap only seeds it when it does
not exist yet.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List

import tomli_w

from errors import DecodeError
from records import from_mapping

DEFAULT_EXPORT_CONFIG_FILE = "/configs/export/config.toml"


@dataclass
class ExportServer:
    nats: str = "nats://127.0.0.1:4222"
    log_level: str = "debug"
    port: str = "8170"
    cache_url: str = "localhost:6379"
    cache_pass: str = ""
    cache_db: str = "0"


@dataclass
class Route:
    mqtt_topic: str = ""
    nats_topic: str = ""
    subtopic: str = ""
    type: str = ""
    workers: int = 10


@dataclass
class ExportMQTT:
    host: str = "tcp://localhost:1883"
    username: str = ""
    password: str = ""
    mtls: bool = False
    skip_tls_ver: bool = True
    retain: bool = False
    qos: int = 0
    ca_path: str = "ca.crt"
    cert_path: str = "thing.crt"
    priv_key_path: str = "thing.key"


@dataclass
class ExportConfig:
    exp: ExportServer = field(default_factory=ExportServer)
    routes: List[Route] = field(default_factory=list)
    mqtt: ExportMQTT = field(default_factory=ExportMQTT)
    nats: str = ""
    file: str = ""

    @classmethod
    def from_dict(cls, data: Dict) -> "ExportConfig":
        routes = data.get("routes") or []
        if not isinstance(routes, list):
            raise DecodeError("'routes' must be an array")
        return from_mapping(
            cls,
            data,
            exp=from_mapping(ExportServer, data.get("exp")),
            routes=[from_mapping(Route, r) for r in routes],
            mqtt=from_mapping(ExportMQTT, data.get("mqtt")),
        )

    def to_toml(self) -> Dict:
        doc = asdict(self)
        doc.pop("file")
        return doc


def save(cfg: ExportConfig) -> None:
    """Write the export config to cfg.file as TOML, creating its directory."""
    path = Path(cfg.file)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(tomli_w.dumps(cfg.to_toml()))
