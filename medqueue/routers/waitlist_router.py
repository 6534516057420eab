from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from ..application.ports.waitlist_repo import Bucket, DateRange, TimeRange
from ..application.services.waitlist_service import Page, normalize_time, parse_bucket_date
from ..config import settings
from ..container import WaitlistServices, build_services
from ..database import get_session
from ..exceptions import WaitlistAuthorizationError
from ..schemas.waitlist import (
    CascadeRequest,
    CascadeResponse,
    ConversionResponse,
    SweepResponse,
    WaitlistEntryResponse,
    WaitlistJoinRequest,
    WaitlistPageResponse,
)
from ..utils import decode_jwt_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/waitlist", tags=["Waitlist"])

oauth2_scheme = HTTPBearer()


@dataclass
class CurrentUser:
    id: str
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == settings.ADMIN_ROLE


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(oauth2_scheme)) -> CurrentUser:
    token = credentials.credentials
    payload = decode_jwt_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing user ID")
    return CurrentUser(id=str(user_id), role=payload.get("role"))


def get_waitlist_services(session: Session = Depends(get_session)) -> WaitlistServices:
    return build_services(session)


def _page_response(page: Page) -> WaitlistPageResponse:
    return WaitlistPageResponse(
        waitlist=[WaitlistEntryResponse.from_dto(e) for e in page.items],
        pagination={
            "total": page.total,
            "page": page.page,
            "limit": page.limit,
            "total_pages": page.total_pages,
        },
        statistics=page.statistics,
    )


@router.post("/join", status_code=201)
def join_waitlist(
    data: WaitlistJoinRequest,
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    try:
        time_range = None
        if data.flexible_time_range:
            time_range = TimeRange(start=data.flexible_time_range.start_time, end=data.flexible_time_range.end_time)
        date_range = None
        if data.flexible_date_range:
            date_range = DateRange(start=data.flexible_date_range.start_date, end=data.flexible_date_range.end_date)
        entry = services.waitlist.join(
            patient_id=current_user.id,
            doctor_id=data.doctor_id,
            date_str=data.date,
            time_str=data.time,
            symptoms=data.symptoms,
            appointment_type=data.appointment_type,
            priority=data.priority,
            is_flexible_time=data.is_flexible_time,
            flexible_time_range=time_range,
            is_flexible_date=data.is_flexible_date,
            flexible_date_range=date_range,
        )
        return {
            "success": True,
            "message": "Successfully added to waitlist",
            "waitlist": WaitlistEntryResponse.from_dto(entry),
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error joining waitlist: {str(e)}")
        raise HTTPException(status_code=500, detail="Unable to join waitlist")


@router.get("/user", response_model=WaitlistPageResponse)
def get_user_waitlist(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.PATIENT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    try:
        return _page_response(services.waitlist.list_for_patient(current_user.id, status=status, page=page, limit=limit))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching user waitlist: {str(e)}")
        raise HTTPException(status_code=500, detail="Unable to fetch waitlist")


@router.get("/doctor", response_model=WaitlistPageResponse)
def get_doctor_waitlist(
    date: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    try:
        return _page_response(
            services.waitlist.list_for_doctor(current_user.id, date_str=date, status=status, page=page, limit=limit)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching doctor waitlist: {str(e)}")
        raise HTTPException(status_code=500, detail="Unable to fetch waitlist")


@router.get("/admin/all", response_model=WaitlistPageResponse)
def get_all_waitlist(
    status: Optional[str] = Query(None),
    doctor_id: Optional[str] = Query(None),
    date: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    if not current_user.is_admin:
        raise WaitlistAuthorizationError("Admin access required")
    try:
        return _page_response(
            services.waitlist.list_all(status=status, doctor_id=doctor_id, date_str=date, page=page, limit=limit)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching waitlist data: {str(e)}")
        raise HTTPException(status_code=500, detail="Unable to fetch waitlist data")


@router.post("/convert/{waitlist_id}", response_model=ConversionResponse)
def convert_waitlist_to_appointment(
    waitlist_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    try:
        result = services.conversion.convert(waitlist_id, current_user.id)
        return ConversionResponse(
            appointment_id=result.appointment.id,
            waitlist=WaitlistEntryResponse.from_dto(result.entry),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error converting waitlist entry {waitlist_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Unable to convert waitlist to appointment")


@router.delete("/{waitlist_id}")
def remove_from_waitlist(
    waitlist_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    try:
        services.withdrawal.withdraw(waitlist_id, current_user.id)
        return {"success": True, "message": "Successfully removed from waitlist"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error removing waitlist entry {waitlist_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Unable to remove from waitlist")


@router.post("/cascade", response_model=CascadeResponse)
def offer_freed_slot(
    data: CascadeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    # Only the slot's doctor or an admin may announce freed capacity.
    if not current_user.is_admin and current_user.id != data.doctor_id:
        raise WaitlistAuthorizationError("Only the doctor or an admin can release this slot")
    bucket = Bucket(doctor_id=data.doctor_id, date=parse_bucket_date(data.date), time=normalize_time(data.time))
    try:
        result = services.cascade.notify_next(bucket)
        return CascadeResponse(
            success=result.notified is not None,
            message=result.message,
            queue_empty=result.queue_empty,
            notified=WaitlistEntryResponse.from_dto(result.notified) if result.notified else None,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error offering slot {bucket.describe()}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to notify waitlist")


@router.post("/sweep", response_model=SweepResponse)
def run_expiry_sweep(
    current_user: CurrentUser = Depends(get_current_user),
    services: WaitlistServices = Depends(get_waitlist_services),
):
    if not current_user.is_admin:
        raise WaitlistAuthorizationError("Admin access required")
    try:
        result = services.reaper.sweep()
        return SweepResponse(
            scanned=result.scanned,
            expired=result.expired,
            offered=result.offered,
            skipped=result.skipped,
            failed=result.failed,
        )
    except Exception as e:
        logger.error(f"Expiry sweep failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Expiry sweep failed")
