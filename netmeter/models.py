"""Pydantic data models for netmeter."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionStatus(str, Enum):
    """Connection state shown to consumers."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ERROR = "error"


class PathStatus(str, Enum):
    """Link state reported by a path observer."""

    SATISFIED = "satisfied"
    UNSATISFIED = "unsatisfied"
    REQUIRES_CONNECTION = "requires_connection"
    UNKNOWN = "unknown"


PATH_TO_CONNECTION = {
    PathStatus.SATISFIED: ConnectionStatus.CONNECTED,
    PathStatus.UNSATISFIED: ConnectionStatus.DISCONNECTED,
    PathStatus.REQUIRES_CONNECTION: ConnectionStatus.CONNECTING,
    PathStatus.UNKNOWN: ConnectionStatus.ERROR,
}


class ResponseFormat(str, Enum):
    """Body format of an external IP service."""

    TEXT = "text"
    JSON = "json"


class ErrorInfo(BaseModel):
    """Published error: stable code plus a one-line description."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class InterfaceSample(BaseModel):
    """Snapshot of one interface at one instant."""

    model_config = ConfigDict(frozen=True)

    name: str
    input_bytes: int = Field(default=0, ge=0)
    output_bytes: int = Field(default=0, ge=0)
    ip_address: Optional[str] = None
    is_up: bool = False
    is_active: bool = False
    description: str = ""

    @property
    def total_bytes(self) -> int:
        return self.input_bytes + self.output_bytes


class DailyStats(BaseModel):
    """Usage totals for one calendar day."""

    date: date
    total_uploaded: int = Field(default=0, ge=0)
    total_downloaded: int = Field(default=0, ge=0)
    peak_upload_speed: float = 0.0
    peak_download_speed: float = 0.0


class IPService(BaseModel):
    """External IP lookup endpoint."""

    name: str
    url: str
    format: ResponseFormat = ResponseFormat.TEXT
    json_key: Optional[str] = None


class PublishedMetrics(BaseModel):
    """Immutable metrics snapshot handed to consumers."""

    model_config = ConfigDict(frozen=True)

    upload_speed: float = 0.0
    download_speed: float = 0.0
    peak_upload_speed: float = 0.0
    peak_download_speed: float = 0.0
    total_uploaded_today: int = 0
    total_downloaded_today: int = 0
    interface_name: str = "Unknown"
    interface_description: str = "Unknown"
    ip_address: str = "Unknown"
    external_ip_address: str = "Unknown"
    network_uptime: float = 0.0
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    last_error: Optional[ErrorInfo] = None
    version: int = 0
    updated_at: Optional[datetime] = None
