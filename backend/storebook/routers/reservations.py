import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_idempotency_key, get_reservation_notifier, get_session
from ..domain.calendar import to_event
from ..domain.errors import ReservationError
from ..infrastructure.repositories import (
    SqlAlchemyCapacityRuleRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyStoreRepository,
)
from ..schemas import ReservationCancel, ReservationCreate, ReservationEnvelope, ReservationList
from ..services.notifier import ReservationNotifier
from ..usecases import reservations as reservation_usecase
from ..usecases.stores import load_store_profile
from ..utils.audit_log import emit_audit_log
from ..utils.time import format_utc_iso
from .errors import database_error, http_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["reservations"])


@router.post("/reservations", response_model=ReservationEnvelope, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    idempotency_key: str | None = Depends(get_idempotency_key),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    notifier: ReservationNotifier = Depends(get_reservation_notifier),
) -> ReservationEnvelope:
    store_repo = SqlAlchemyStoreRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    rule_repo = SqlAlchemyCapacityRuleRepository(session)
    try:
        outcome = await reservation_usecase.create_reservation(
            store_repo,
            res_repo,
            rule_repo,
            request=payload.to_request(),
            idempotency_key=idempotency_key,
            settings=settings,
        )
    except ReservationError as exc:
        raise http_error(exc)
    except SQLAlchemyError:
        logger.exception("reservation create failed")
        raise database_error()

    reservation = outcome.reservation
    try:
        emit_audit_log(
            action="reservation.duplicate" if outcome.duplicate else "reservation.created",
            initiator="customer",
            store_id=reservation.store_id,
            reservation_id=reservation.id,
            slot_start_utc=format_utc_iso(reservation.slot_start_utc),
            seat_id=reservation.seat_id,
            people=reservation.people,
            status_to=reservation.status,
            idempotency_key=reservation.idempotency_key,
        )
    except RuntimeError:
        # The row is committed; a retry with the same key replays it.
        logger.exception("audit log failed for reservation %s", reservation.id)

    if outcome.duplicate:
        response.status_code = status.HTTP_200_OK
    else:
        background_tasks.add_task(notifier.notify_created, reservation)
    return ReservationEnvelope(duplicate=outcome.duplicate, reservation=to_event(reservation))


@router.get("/reservations", response_model=ReservationList)
async def list_reservations(
    store_id: str = Query(..., alias="storeId", min_length=1),
    start: str | None = Query(default=None, description="ISO 8601 lower bound on slot start"),
    end: str | None = Query(default=None, description="ISO 8601 upper bound on slot start"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ReservationList:
    store_repo = SqlAlchemyStoreRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows = await reservation_usecase.list_reservations(
            store_repo,
            res_repo,
            store_id=store_id,
            start=start,
            end=end,
            settings=settings,
        )
    except ReservationError as exc:
        raise http_error(exc)
    except SQLAlchemyError:
        logger.exception("reservation list failed store=%s", store_id)
        raise database_error()
    return ReservationList(reservations=[to_event(row) for row in rows])


@router.get("/reservations/{reservation_id}", response_model=ReservationEnvelope)
async def get_reservation(
    reservation_id: int = Path(..., ge=1),
    store_id: str = Query(..., alias="storeId", min_length=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationEnvelope:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        reservation = await reservation_usecase.get_reservation(
            res_repo, store_id=store_id, reservation_id=reservation_id
        )
    except ReservationError as exc:
        raise http_error(exc)
    return ReservationEnvelope(reservation=to_event(reservation))


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationEnvelope)
async def cancel_reservation(
    payload: ReservationCancel,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ReservationEnvelope:
    store_repo = SqlAlchemyStoreRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            profile = await load_store_profile(store_repo, store_id=payload.store_id, settings=settings)
            updated, previous = await reservation_usecase.cancel_reservation(
                res_repo,
                store_id=payload.store_id,
                reservation_id=reservation_id,
                phone=payload.phone,
                tz=profile.tz,
                allow_same_day=settings.allow_same_day_cancel,
            )
        except ReservationError as exc:
            raise http_error(exc)

        if previous != updated.status:
            try:
                emit_audit_log(
                    action="reservation.cancelled",
                    initiator="customer",
                    store_id=updated.store_id,
                    reservation_id=updated.id,
                    slot_start_utc=format_utc_iso(updated.slot_start_utc),
                    seat_id=updated.seat_id,
                    people=updated.people,
                    status_from=previous,
                    status_to=updated.status,
                )
            except RuntimeError:
                raise internal_error("failed to record cancellation")

    return ReservationEnvelope(reservation=to_event(updated))
