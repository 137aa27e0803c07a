from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .domain.availability import SlotAvailability
from .usecases.reservations import ReservationRequest

# Every spelling callers send for a field, resolved once here.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "store_id": ("storeId", "store_id"),
    "start_at": ("startAt", "start_at", "startTime", "start_time"),
    "date": ("date", "reservationDate", "reservation_date"),
    "time": ("time", "reservationTime", "reservation_time"),
    "name": ("name", "customerName", "customer_name", "userName", "user_name"),
    "user_id": ("userId", "user_id", "lineUserId", "line_user_id"),
    "phone": ("phone", "phoneNumber", "phone_number", "userPhone", "user_phone", "tel"),
    "people": ("people", "numberOfPeople", "number_of_people", "partySize", "party_size"),
    "seat_id": ("seatId", "seat_id"),
    "message": ("message", "note", "notes"),
    "start_time": ("startTime", "start_time", "start"),
    "end_time": ("endTime", "end_time", "end"),
    "max_groups": ("maxGroups", "max_groups"),
    "max_people": ("maxPeople", "max_people"),
    "max_per_group": ("maxPerGroup", "max_per_group"),
}


def _aliases(field: str) -> AliasChoices:
    return AliasChoices(*FIELD_ALIASES[field])


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ReservationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    store_id: Union[str, int, None] = Field(default=None, validation_alias=_aliases("store_id"))
    start_at: Any = Field(default=None, validation_alias=_aliases("start_at"))
    date: Any = Field(default=None, validation_alias=_aliases("date"))
    time: Any = Field(default=None, validation_alias=_aliases("time"))
    name: Optional[str] = Field(default=None, validation_alias=_aliases("name"))
    user_id: Optional[str] = Field(default=None, validation_alias=_aliases("user_id"))
    phone: Union[str, int, None] = Field(default=None, validation_alias=_aliases("phone"))
    # Checked by the writer so that bad counts are rejected rather than coerced.
    people: Any = Field(default=1, validation_alias=_aliases("people"))
    seat_id: Union[str, int, None] = Field(default=None, validation_alias=_aliases("seat_id"))
    message: Optional[str] = Field(default=None, validation_alias=_aliases("message"))

    def to_request(self) -> ReservationRequest:
        return ReservationRequest(
            store_id=_optional_str(self.store_id),
            start_at=self.start_at,
            date=self.date,
            time=self.time,
            name=_optional_str(self.name),
            user_id=_optional_str(self.user_id),
            phone=_optional_str(self.phone),
            people=self.people,
            seat_id=_optional_str(self.seat_id),
            message=self.message,
        )


class ReservationCancel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    store_id: str = Field(validation_alias=_aliases("store_id"))
    phone: str = Field(validation_alias=_aliases("phone"))


class ReservationEnvelope(BaseModel):
    success: bool = True
    duplicate: bool = False
    reservation: dict[str, Any]


class ReservationList(BaseModel):
    success: bool = True
    reservations: list[dict[str, Any]]


class ConstraintList(BaseModel):
    success: bool = True
    constraints: list[dict[str, Any]]


class CapacityRuleIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    start_time: Union[str, int] = Field(validation_alias=_aliases("start_time"))
    end_time: Union[str, int] = Field(validation_alias=_aliases("end_time"))
    max_groups: Optional[int] = Field(default=None, ge=0, validation_alias=_aliases("max_groups"))
    max_people: Optional[int] = Field(default=None, ge=0, validation_alias=_aliases("max_people"))
    max_per_group: Optional[int] = Field(default=None, ge=1, validation_alias=_aliases("max_per_group"))
    seat_id: Optional[str] = Field(default=None, validation_alias=_aliases("seat_id"))


class CapacityRulesReplace(BaseModel):
    rules: list[CapacityRuleIn] = Field(default_factory=list)


class CapacityRulesReplaced(BaseModel):
    success: bool = True
    date: str
    constraints: list[dict[str, Any]]


class SlotAvailabilityRead(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    time: str
    status: str
    selectable: bool
    current_groups: int
    current_people: int
    max_groups: Optional[int] = None
    max_people: Optional[int] = None
    max_per_group: Optional[int] = None
    remaining_groups: Optional[int] = None
    remaining_people: Optional[int] = None

    @classmethod
    def from_domain(cls, slot: SlotAvailability) -> "SlotAvailabilityRead":
        limit = slot.limit
        return cls(
            time=slot.time,
            status=slot.status,
            selectable=slot.selectable,
            current_groups=slot.current_groups,
            current_people=slot.current_people,
            max_groups=limit.max_groups if limit else None,
            max_people=limit.max_people if limit else None,
            max_per_group=limit.max_per_group if limit else None,
            remaining_groups=slot.remaining_groups,
            remaining_people=slot.remaining_people,
        )


class AvailabilityRead(BaseModel):
    success: bool = True
    date: str
    slots: list[SlotAvailabilityRead]
