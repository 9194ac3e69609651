from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from .. import schemas
from ..dependencies import get_booking_service, get_reschedule
from ..errors import ErrorKind, ValidationFailed
from ..services.booking import BookingService
from ..services.reschedule import RescheduleSaga

router = APIRouter(prefix="/api", tags=["appointments"])


def _errors(errors: List[str], kind: Optional[ErrorKind] = ErrorKind.validation) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"errors": errors, "errorKind": kind.value if kind else None},
    )


def _respond(outcome: schemas.BookingOutcome, status_code: int = 200) -> JSONResponse:
    if not outcome.success:
        return _errors(outcome.errors, outcome.error_kind)
    return JSONResponse(status_code=status_code, content=outcome.as_result())


@router.get("/slots", response_model=schemas.SlotsResponse)
def get_slots(
    doctor_id: str = Query(..., description="Doctor id"),
    date: str = Query(..., description="YYYY-MM-DD"),
    booking: BookingService = Depends(get_booking_service),
):
    try:
        slots = booking.availability.list_slots(doctor_id, date)
    except ValidationFailed as e:
        return _errors(e.errors)
    return schemas.SlotsResponse(slots=slots)


@router.post("/appointments")
def book(req: schemas.BookRequest, booking: BookingService = Depends(get_booking_service)):
    return _respond(booking.book(req.to_request()), status_code=201)


@router.get("/appointments")
def list_appointments(email: str = Query(...), booking: BookingService = Depends(get_booking_service)):
    try:
        appointments = booking.patient_appointments(email)
    except ValidationFailed as e:
        return _errors(e.errors)
    return {"appointments": appointments}


@router.post("/appointments/{appointment_id}/cancel")
def cancel(appointment_id: str, req: schemas.CancelRequest, booking: BookingService = Depends(get_booking_service)):
    return _respond(booking.cancel(appointment_id, req.patient_email))


@router.post("/appointments/{appointment_id}/reschedule")
def reschedule(appointment_id: str, req: schemas.RescheduleRequest, saga: RescheduleSaga = Depends(get_reschedule)):
    return _respond(saga.reschedule(appointment_id, req.patient_email, req.new_date, req.new_time))
