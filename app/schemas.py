"""Pydantic schemas shared by the engine and the HTTP/WebSocket layers."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ReadingStatus(str, Enum):
    """Link statuses the service itself writes into a slot."""

    ok = "Ok"
    not_connected = "Not connected"


class Reading(BaseModel):
    """Latest measurement and status for one slot, in its wire shape."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    weight_net: Optional[Union[int, float]] = Field(default=None, alias="WeightNet")
    weight_gross: Optional[Union[int, float]] = Field(default=None, alias="WeightGross")
    status: Optional[str] = Field(default=ReadingStatus.not_connected.value, alias="Status")
    device_message: Optional[str] = Field(default=None, alias="DeviceMessage")

    @classmethod
    def parse_frame(cls, raw: Union[str, bytes]) -> "Reading":
        """Parse a device frame, raising ``ValidationError`` when it is malformed.

        Validation is strict: a weight sent as a string or boolean is rejected
        rather than coerced. Devices may omit ``Status``; a frame can only arrive
        over an open link, so such readings are stored as ``Ok``.
        """
        reading = cls.model_validate_json(raw, strict=True)
        if "status" not in reading.model_fields_set:
            reading = reading.model_copy(update={"status": ReadingStatus.ok.value})
        return reading

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class LookupRequest(BaseModel):
    """Body of a lookup request naming the configured device address."""

    path: Optional[str] = Field(default=None, description="Configured address of the scale.")


class SourceHealth(BaseModel):
    """Connection health for a single configured source."""

    slot: int = Field(..., ge=1)
    address: str
    state: str
    reconnect_attempts: int = Field(..., ge=0)
    max_reconnect_attempts: Optional[int] = Field(
        default=None, description="Reconnect limit; null when retries are unlimited."
    )
    status: Optional[str] = None


class HealthReport(BaseModel):
    status: str = "ok"
    sources: List[SourceHealth] = Field(default_factory=list)
