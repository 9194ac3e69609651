from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_backend
from ..errors import DoctorNotFound
from ..services.backend import SqlBackend

router = APIRouter(prefix="/api", tags=["clinic"])


@router.get("/clinic-info")
def clinic_info(backend: SqlBackend = Depends(get_backend)):
    info = backend.get_clinic_info()
    if info is None:
        raise HTTPException(status_code=404, detail="Clinic information not configured")
    return info


@router.get("/doctors")
def doctors(backend: SqlBackend = Depends(get_backend)):
    return {"doctors": backend.get_doctors()}


@router.get("/doctors/{doctor_id}")
def doctor(doctor_id: str, backend: SqlBackend = Depends(get_backend)):
    try:
        return backend.get_doctor_by_id(doctor_id)
    except DoctorNotFound:
        raise HTTPException(status_code=404, detail="Doctor not found")
