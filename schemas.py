from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for everything that crosses the wire: camelCase out, either case in."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


Latitude = Annotated[float, Field(ge=-90, le=90, allow_inf_nan=False)]
Longitude = Annotated[float, Field(ge=-180, le=180, allow_inf_nan=False)]
Radius = Annotated[float, Field(ge=0, allow_inf_nan=False)]


class Position(WireModel):
    model_config = ConfigDict(frozen=True)

    latitude: Latitude
    longitude: Longitude


class CallType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class CallStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    ENDED = "ended"
    MISSED = "missed"


ACTIVE_CALL_STATUSES = frozenset({CallStatus.PENDING, CallStatus.ACCEPTED})


# Collection: user
class User(WireModel):
    id: str
    username: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius: float = 2.0
    is_active: bool = True
    created_at: datetime
    last_seen: datetime

    @property
    def position(self) -> Optional[Position]:
        if self.latitude is None or self.longitude is None:
            return None
        return Position(latitude=self.latitude, longitude=self.longitude)


# Collection: message (immutable, expires after the retention window)
class Message(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    username: str
    content: str
    latitude: float
    longitude: float
    radius: float
    created_at: datetime
    expires_at: datetime

    @property
    def position(self) -> Position:
        return Position(latitude=self.latitude, longitude=self.longitude)


# Collection: call
class Call(WireModel):
    id: str
    caller_id: str
    caller_username: str
    receiver_id: str
    receiver_username: str
    call_type: CallType
    status: CallStatus = CallStatus.PENDING
    created_at: datetime
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.caller_id, self.receiver_id)


# Collection: report (append-only)
class Report(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    reporter_id: Optional[str] = None
    message_id: Optional[str] = None
    user_id: Optional[str] = None
    reason: str
    status: str = "pending"
    created_at: datetime


# -------------------- REST payloads --------------------

class UserCreate(WireModel):
    username: str = Field(..., min_length=1)
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None
    radius: Radius = 2.0


class ReportCreate(WireModel):
    reporter_id: Optional[str] = None
    message_id: Optional[str] = None
    user_id: Optional[str] = None
    reason: str = Field(..., min_length=1)


class NearbyUser(WireModel):
    id: str
    username: str


class NearbyUsers(WireModel):
    count: int
    users: List[NearbyUser]


# -------------------- Inbound WebSocket events --------------------

class UserJoin(WireModel):
    type: Literal["user_join"]
    user_id: str = Field(..., min_length=1)
    location: Optional[Position] = None
    radius: Optional[Radius] = None


class SendMessage(WireModel):
    type: Literal["send_message"]
    username: str
    content: str


class Typing(WireModel):
    type: Literal["typing_start", "typing_stop"]
    username: str


class UpdateLocation(WireModel):
    type: Literal["update_location"]
    location: Position


class UpdateRadius(WireModel):
    type: Literal["update_radius"]
    radius: Radius


class InitiateCall(WireModel):
    type: Literal["initiate_call"]
    call_type: CallType
    caller_username: str
    receiver_id: str = Field(..., min_length=1)
    receiver_username: str


class AcceptCall(WireModel):
    type: Literal["accept_call"]
    call_id: str


class DeclineCall(WireModel):
    type: Literal["decline_call"]
    call_id: str


class EndCall(WireModel):
    type: Literal["end_call"]
    call_id: str


class WebRTCSignal(WireModel):
    type: Literal["webrtc_offer", "webrtc_answer", "webrtc_ice_candidate"]
    target_user_id: str = Field(..., min_length=1)
    data: Dict[str, Any]


InboundEvent = Annotated[
    Union[
        UserJoin,
        SendMessage,
        Typing,
        UpdateLocation,
        UpdateRadius,
        InitiateCall,
        AcceptCall,
        DeclineCall,
        EndCall,
        WebRTCSignal,
    ],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundEvent)


def parse_event(raw: Union[str, bytes]) -> InboundEvent:
    """Decode one inbound frame; raises pydantic.ValidationError when malformed."""
    return _inbound_adapter.validate_json(raw)
