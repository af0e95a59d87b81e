"""
Device configuration records decoded from the bootstrap service payload.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from agent_config import AgentConfig
from errors import DecodeError
from export_config import ExportConfig


def _section(data: Dict, key: str) -> Dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"'{key}' must be an object, got {type(value).__name__}")
    return value


@dataclass
class Channel:
    id: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict) -> "Channel":
        if not isinstance(data, dict):
            raise DecodeError(f"channel must be an object, got {type(data).__name__}")
        return cls(id=str(data.get("id") or ""), metadata=_section(data, "metadata"))

    def is_data(self) -> bool:
        return self.metadata.get("type") == "data"


@dataclass
class ServicesConfig:
    agent: AgentConfig = field(default_factory=AgentConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    @classmethod
    def from_dict(cls, data: Dict) -> "ServicesConfig":
        return cls(
            agent=AgentConfig.from_dict(_section(data, "agent")),
            export=ExportConfig.from_dict(_section(data, "export")),
        )


@dataclass
class DeviceConfig:
    """
    Configuration of one device as served by the bootstrap service.

    Only lives for the duration of a single bootstrap run; its fields are
    copied into the agent and export configs.
    """

    mainflux_id: str = ""
    mainflux_key: str = ""
    mainflux_channels: List[Channel] = field(default_factory=list)
    client_key: str = ""
    client_cert: str = ""
    ca_cert: str = ""
    content: ServicesConfig = field(default_factory=ServicesConfig)

    @classmethod
    def from_dict(cls, data: Any) -> "DeviceConfig":
        """
        Build a DeviceConfig from the decoded JSON payload.

        Args:
            data: Decoded JSON document

        Returns:
            DeviceConfig instance

        Raises:
            DecodeError: If the document or one of its sections has the wrong type
        """
        if not isinstance(data, dict):
            raise DecodeError(f"device config must be an object, got {type(data).__name__}")

        channels = data.get("mainflux_channels") or []
        if not isinstance(channels, list):
            raise DecodeError("'mainflux_channels' must be an array")

        return cls(
            mainflux_id=data.get("mainflux_id") or "",
            mainflux_key=data.get("mainflux_key") or "",
            mainflux_channels=[Channel.from_dict(c) for c in channels],
            client_key=data.get("client_key") or "",
            client_cert=data.get("client_cert") or "",
            ca_cert=data.get("ca_cert") or "",
            content=ServicesConfig.from_dict(_section(data, "content")),
        )
