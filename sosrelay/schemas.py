"""
Pydantic schemas for request/response validation.

Field names on the wire follow the camelCase used by the edge client and the
monitoring console (deviceId, receivedAt, queueSize); Python attributes stay
snake_case and are mapped through aliases.
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Command Service
# =============================================================================

class SosRequest(BaseModel):
    """
    Body of POST /sos.

    raw is optional at the schema level so that a missing payload is
    reported as a 400 {error} by the handler rather than a schema error.
    """
    raw: Optional[str] = Field(None, description="Alert payload text, e.g. SOS|ID=HX001|LAT=..|LON=..")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"raw": "SOS|ID=HX001|LAT=12.8721|LON=80.2254|DIR=NE|TYPE=TSUNAMI|TIME=2025-01-15T10:00:00Z"}
            ]
        }
    }


class AckResponse(BaseModel):
    """Acknowledgment returned for a resolved alert."""
    ack: str = Field(..., description="ACK|SAFEBASE=<id>|DIST=<km>KM|CAPACITY=<status>")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error description")


class SafeBaseResponse(BaseModel):
    id: str
    name: Optional[str] = None
    lat: float
    lon: float
    capacity: int = Field(..., ge=0)
    filled: int = Field(..., ge=0)

    model_config = {"from_attributes": True}


class SosEventResponse(BaseModel):
    id: int
    device_id: str
    lat: float
    lon: float
    type: str
    time: str
    status: str

    model_config = {"from_attributes": True}


class ResolvedAlertEvent(BaseModel):
    """Frame broadcast to real-time observers after an alert is resolved."""
    type: str = "sos"
    device_id: str = Field(..., serialization_alias="deviceId")
    lat: float
    lon: float
    emergency: str
    time: str
    ack: str


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")


# =============================================================================
# Relay
# =============================================================================

class SmsReceiverRequest(BaseModel):
    """Body of POST /sms-receiver."""
    payload: Optional[str] = Field(None, description="Alert payload text as sent by the edge client")


class QueuedResponse(BaseModel):
    queued: bool = True


class RelayMessageResponse(BaseModel):
    id: int
    raw: str
    received_at: int = Field(..., serialization_alias="receivedAt", description="Epoch milliseconds")
    status: str
    ack: Optional[str] = None

    model_config = {"from_attributes": True}


class MessagesListResponse(BaseModel):
    messages: list[RelayMessageResponse] = Field(default_factory=list)
    queue_size: int = Field(..., ge=0, serialization_alias="queueSize")


class RetryQueueItemResponse(BaseModel):
    message_id: int = Field(..., serialization_alias="messageId")
    payload: str
    attempts: int = Field(..., ge=0)
    last_error: Optional[str] = Field(None, serialization_alias="lastError")

    model_config = {"from_attributes": True}


class QueueResponse(BaseModel):
    items: list[RetryQueueItemResponse] = Field(default_factory=list)
    processing: bool
