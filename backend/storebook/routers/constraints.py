import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import StaffIdentity, get_current_staff, get_session
from ..domain.calendar import to_background_event
from ..domain.errors import ReservationError
from ..infrastructure.repositories import (
    SqlAlchemyCapacityRuleRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyStoreRepository,
)
from ..schemas import (
    AvailabilityRead,
    CapacityRulesReplace,
    CapacityRulesReplaced,
    ConstraintList,
    SlotAvailabilityRead,
)
from ..usecases import capacity as capacity_usecase
from ..usecases.stores import load_store_profile
from ..utils.audit_log import emit_audit_log
from .errors import database_error, http_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["constraints"])


@router.get("/constraints", response_model=ConstraintList)
async def list_constraints(
    store_id: str = Query(..., alias="storeId", min_length=1),
    start: str | None = Query(default=None, description="window start (ISO 8601 or YYYY-MM-DD)"),
    end: str | None = Query(default=None, description="window end (ISO 8601 or YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ConstraintList:
    store_repo = SqlAlchemyStoreRepository(session)
    rule_repo = SqlAlchemyCapacityRuleRepository(session)
    try:
        events = await capacity_usecase.list_constraint_events(
            store_repo,
            rule_repo,
            store_id=store_id,
            start=start,
            end=end,
            settings=settings,
        )
    except ReservationError as exc:
        raise http_error(exc)
    except SQLAlchemyError:
        logger.exception("constraint list failed store=%s", store_id)
        raise database_error()
    return ConstraintList(constraints=events)


@router.put("/constraints/{on_date}", response_model=CapacityRulesReplaced)
async def replace_constraints(
    on_date: date,
    payload: CapacityRulesReplace,
    store_id: str = Query(..., alias="storeId", min_length=1),
    staff: StaffIdentity = Depends(get_current_staff),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> CapacityRulesReplaced:
    if staff.store_id != store_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "staff token is for another store"},
        )
    store_repo = SqlAlchemyStoreRepository(session)
    rule_repo = SqlAlchemyCapacityRuleRepository(session)
    async with session.begin():
        try:
            profile = await load_store_profile(store_repo, store_id=store_id, settings=settings)
            rules = await capacity_usecase.replace_rules_for_date(
                rule_repo,
                store_id=store_id,
                on_date=on_date,
                rules=[rule.model_dump() for rule in payload.rules],
            )
        except ReservationError as exc:
            raise http_error(exc)

        try:
            emit_audit_log(
                action="capacity.rules_replaced",
                initiator="staff",
                store_id=store_id,
                extra={"date": on_date.isoformat(), "rule_count": len(rules), "staff_id": staff.staff_id},
            )
        except RuntimeError:
            raise internal_error("failed to record rule change")

    return CapacityRulesReplaced(
        date=on_date.isoformat(),
        constraints=[to_background_event(rule, on_date, profile.tz) for rule in rules],
    )


@router.get("/availability", response_model=AvailabilityRead)
async def get_availability(
    on_date: date = Query(..., alias="date"),
    store_id: str = Query(..., alias="storeId", min_length=1),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> AvailabilityRead:
    store_repo = SqlAlchemyStoreRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    rule_repo = SqlAlchemyCapacityRuleRepository(session)
    try:
        slots = await capacity_usecase.availability_for_date(
            store_repo,
            res_repo,
            rule_repo,
            store_id=store_id,
            on_date=on_date,
            settings=settings,
        )
    except SQLAlchemyError:
        logger.exception("availability failed store=%s date=%s", store_id, on_date)
        raise database_error()
    return AvailabilityRead(
        date=on_date.isoformat(),
        slots=[SlotAvailabilityRead.from_domain(slot) for slot in slots],
    )
