"""Websocket frames: client events and server replies.

Every frame is ``{"type": ..., "data": {...}}``. Client events are parsed
into one of the models below by their ``type``.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class TokenData(BaseModel):
    token: str = Field(min_length=1)


class TicketRef(BaseModel):
    ticket_id: int


class TypingData(BaseModel):
    ticket_id: int
    is_typing: bool = True


class AuthenticateEvent(BaseModel):
    type: Literal["authenticate"]
    data: TokenData


class JoinTicketEvent(BaseModel):
    type: Literal["join_ticket"]
    data: TicketRef


class LeaveTicketEvent(BaseModel):
    type: Literal["leave_ticket"]
    data: TicketRef


class TypingEvent(BaseModel):
    type: Literal["typing"]
    data: TypingData


class PingEvent(BaseModel):
    type: Literal["ping"]
    data: dict[str, Any] = Field(default_factory=dict)


ClientEvent = Annotated[
    Union[AuthenticateEvent, JoinTicketEvent, LeaveTicketEvent, TypingEvent, PingEvent],
    Field(discriminator="type"),
]

client_event_adapter = TypeAdapter(ClientEvent)


def server_frame(event_type: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"type": event_type, "data": data or {}}


def error_frame(reason: str, message: str) -> dict[str, Any]:
    return server_frame("error", {"reason": reason, "message": message})
