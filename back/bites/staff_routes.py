"""
Staff records, their login accounts and daily attendance.
"""

import logging
from datetime import date, datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from . import models, security
from .db import get_session
from .passwords import generate_staff_password
from .permissions import Permissions
from .security import PermissionChecker
from .uploads import remove_upload, save_staff_photo, upload_url

logger = logging.getLogger(__name__)

router = APIRouter()

HALF_DAY_HOURS = 4
ATTENDANCE_HISTORY = 30


# ============ HELPERS ============

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def local_today() -> date:
    return datetime.now().date()


def parse_joined_at(raw: str) -> date:
    raw = raw.strip()
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid joining date")


def parse_staff_status(raw: str | None) -> models.StaffStatus:
    if not raw:
        return models.StaffStatus.active
    for member in models.StaffStatus:
        if member.value.lower() == raw.strip().lower():
            return member
    raise HTTPException(status_code=400, detail="Status must be Active or Inactive")


def missing_fields_response(name, role, phone, joined_at) -> JSONResponse | None:
    if name and role and phone and joined_at:
        return None
    return JSONResponse(
        status_code=400,
        content={
            "error": "Missing required fields",
            "details": {
                "name": None if name else "Name is required",
                "role": None if role else "Role is required",
                "phone": None if phone else "Phone is required",
                "joinedAt": None if joined_at else "Joining date is required",
            },
        },
    )


def serialize_attendance(record: models.StaffAttendance) -> dict:
    worked_hours = None
    if record.check_in and record.check_out:
        worked_hours = round(
            (_as_utc(record.check_out) - _as_utc(record.check_in)).total_seconds() / 3600, 2
        )
    return {
        "id": record.id,
        "staffId": record.staff_id,
        "date": record.date.isoformat(),
        "checkIn": _as_utc(record.check_in).isoformat() if record.check_in else None,
        "checkOut": _as_utc(record.check_out).isoformat() if record.check_out else None,
        "status": record.status.value,
        "workedHours": worked_hours,
    }


def linked_account(session: Session, staff: models.Staff, email: str | None = None) -> models.User | None:
    account = session.exec(select(models.User).where(models.User.staff_id == staff.id)).first()
    if account is None and (email or staff.email):
        lookup = email or staff.email
        account = session.exec(
            select(models.User).where(or_(models.User.email == lookup, models.User.username == lookup))
        ).first()
    return account


def email_taken(session: Session, email: str, exclude_user_id: int | None = None) -> bool:
    statement = select(models.User).where(or_(models.User.email == email, models.User.username == email))
    if exclude_user_id is not None:
        statement = statement.where(models.User.id != exclude_user_id)
    return session.exec(statement).first() is not None


def serialize_staff(session: Session, staff: models.Staff) -> dict:
    records = session.exec(
        select(models.StaffAttendance)
        .where(models.StaffAttendance.staff_id == staff.id)
        .order_by(models.StaffAttendance.date.desc())
        .limit(ATTENDANCE_HISTORY)
    ).all()
    count = session.exec(
        select(func.count()).select_from(models.StaffAttendance).where(models.StaffAttendance.staff_id == staff.id)
    ).one()
    return {
        "id": staff.id,
        "name": staff.name,
        "role": staff.role,
        "phone": staff.phone,
        "email": staff.email,
        "photo": upload_url("staff", staff.photo_filename),
        "status": staff.status.value,
        "joinedAt": staff.joined_at.isoformat(),
        "attendance": [serialize_attendance(r) for r in records],
        "attendanceCount": count,
        "hasLogin": linked_account(session, staff) is not None,
    }


def create_staff_account(session: Session, staff: models.Staff) -> str:
    """Add the login account for a staff member; returns the plain password."""
    password = generate_staff_password(staff.name, staff.role, staff.phone, staff.joined_at)
    session.add(models.User(
        username=staff.email,
        email=staff.email,
        name=staff.name,
        hashed_password=security.get_password_hash(password),
        role=staff.role.strip().lower(),
        staff_id=staff.id,
    ))
    return password


def _get_staff(session: Session, staff_id: int) -> models.Staff:
    staff = session.get(models.Staff, staff_id)
    if not staff:
        raise HTTPException(status_code=404, detail="Staff member not found")
    return staff


async def _read_photo(photo: UploadFile | None) -> bytes | None:
    if photo is None or not photo.filename:
        return None
    data = await photo.read()
    return data or None


# ============ STAFF ============

@router.get("/staff")
def list_staff(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.STAFF_READ))],
    session: Session = Depends(get_session),
) -> list[dict]:
    staff = session.exec(
        select(models.Staff).order_by(models.Staff.joined_at.desc(), models.Staff.id.desc())
    ).all()
    return [serialize_staff(session, member) for member in staff]


@router.get("/staff/stats")
def staff_stats(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.STAFF_READ))],
    session: Session = Depends(get_session),
) -> dict:
    staff = session.exec(select(models.Staff)).all()
    present_today = session.exec(
        select(func.count()).select_from(models.StaffAttendance).where(
            models.StaffAttendance.date == local_today(),
            models.StaffAttendance.check_in.is_not(None),
        )
    ).one()

    roles: dict[str, int] = {}
    for member in staff:
        roles[member.role] = roles.get(member.role, 0) + 1

    active = sum(1 for member in staff if member.status == models.StaffStatus.active)
    return {
        "total": len(staff),
        "active": active,
        "inactive": len(staff) - active,
        "presentToday": present_today,
        "roles": roles,
    }


@router.get("/staff/{staff_id}")
def get_staff(
    staff_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.STAFF_READ))],
    session: Session = Depends(get_session),
) -> dict:
    return serialize_staff(session, _get_staff(session, staff_id))


@router.post("/staff", status_code=201)
async def create_staff(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.STAFF_MANAGE))],
    name: Annotated[str | None, Form()] = None,
    role: Annotated[str | None, Form()] = None,
    phone: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    status: Annotated[str | None, Form()] = None,
    joinedAt: Annotated[str | None, Form()] = None,
    photo: Annotated[UploadFile | None, File()] = None,
    session: Session = Depends(get_session),
):
    """Add a staff member; an email also creates their login account."""
    missing = missing_fields_response(name, role, phone, joinedAt)
    if missing:
        return missing

    name, role, phone = name.strip(), role.strip(), phone.strip()
    email = (email or "").strip() or None
    joined_at = parse_joined_at(joinedAt)
    staff_status = parse_staff_status(status)

    if session.exec(select(models.Staff).where(models.Staff.phone == phone)).first():
        raise HTTPException(status_code=400, detail="Staff member with this phone number already exists")
    if email and email_taken(session, email):
        raise HTTPException(status_code=400, detail="Email already exists in the system")

    photo_data = await _read_photo(photo)
    photo_filename = save_staff_photo(photo_data, name) if photo_data else None

    staff = models.Staff(
        name=name,
        role=role,
        phone=phone,
        email=email,
        photo_filename=photo_filename,
        status=staff_status,
        joined_at=joined_at,
    )
    try:
        session.add(staff)
        session.flush()
        password = create_staff_account(session, staff) if email else None
        session.commit()
    except IntegrityError:
        session.rollback()
        remove_upload("staff", photo_filename)
        raise HTTPException(status_code=400, detail="Staff member or email already exists")

    session.refresh(staff)
    logger.info(f"Added staff member {staff.name} ({staff.role}){' with login' if email else ''}")

    response = serialize_staff(session, staff)
    response["loginCredentials"] = {
        "email": email,
        "password": password,
        "message": "Login credentials have been generated for this staff member",
    } if email else None
    return JSONResponse(status_code=201, content=response)


@router.put("/staff/{staff_id}")
async def update_staff(
    staff_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.STAFF_MANAGE))],
    name: Annotated[str | None, Form()] = None,
    role: Annotated[str | None, Form()] = None,
    phone: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    status: Annotated[str | None, Form()] = None,
    joinedAt: Annotated[str | None, Form()] = None,
    photo: Annotated[UploadFile | None, File()] = None,
    session: Session = Depends(get_session),
):
    """Update a staff member and keep their login account in sync."""
    staff = _get_staff(session, staff_id)

    missing = missing_fields_response(name, role, phone, joinedAt)
    if missing:
        return missing

    name, role, phone = name.strip(), role.strip(), phone.strip()
    email = (email or "").strip() or None
    joined_at = parse_joined_at(joinedAt)
    staff_status = parse_staff_status(status) if status else staff.status

    duplicate = session.exec(
        select(models.Staff).where(models.Staff.phone == phone, models.Staff.id != staff_id)
    ).first()
    if duplicate:
        raise HTTPException(status_code=400, detail="Another staff member with this phone number already exists")

    account = linked_account(session, staff)
    if email and email != staff.email and email_taken(session, email, account.id if account else None):
        raise HTTPException(status_code=400, detail="Email already exists in the system")

    old_photo = staff.photo_filename
    photo_data = await _read_photo(photo)
    new_photo = save_staff_photo(photo_data, name) if photo_data else None

    staff.name = name
    staff.role = role
    staff.phone = phone
    staff.email = email
    staff.status = staff_status
    staff.joined_at = joined_at
    if new_photo:
        staff.photo_filename = new_photo
    session.add(staff)

    new_password = None
    if email and account:
        account.name = name
        account.email = email
        account.username = email
        account.role = role.lower()
        account.staff_id = staff.id
        session.add(account)
    elif email:
        new_password = create_staff_account(session, staff)
    elif account:
        session.delete(account)

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        remove_upload("staff", new_photo)
        raise HTTPException(status_code=400, detail="Staff member or email already exists")

    if new_photo:
        remove_upload("staff", old_photo)

    session.refresh(staff)
    response = serialize_staff(session, staff)
    if new_password:
        response["loginCredentials"] = {
            "email": email,
            "password": new_password,
            "message": "New login credentials have been generated",
        }
    return response


@router.delete("/staff/{staff_id}")
def delete_staff(
    staff_id: int,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.STAFF_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    staff = _get_staff(session, staff_id)

    for record in session.exec(
        select(models.StaffAttendance).where(models.StaffAttendance.staff_id == staff_id)
    ).all():
        session.delete(record)

    account = linked_account(session, staff)
    if account:
        session.delete(account)

    photo_filename = staff.photo_filename
    session.delete(staff)
    session.commit()

    remove_upload("staff", photo_filename)
    logger.info(f"Deleted staff member #{staff_id}")
    return {"success": True, "message": "Staff member deleted successfully"}


# ============ ATTENDANCE ============

def _staff_for_attendance(session: Session, raw_id) -> models.Staff:
    staff_id = None
    if not isinstance(raw_id, bool):
        try:
            staff_id = int(str(raw_id).strip())
        except (TypeError, ValueError):
            staff_id = None
    if staff_id is None or staff_id <= 0:
        raise HTTPException(status_code=400, detail="Valid staff ID is required")
    return _get_staff(session, staff_id)


def _today_record(session: Session, staff_id: int) -> models.StaffAttendance | None:
    return session.exec(
        select(models.StaffAttendance).where(
            models.StaffAttendance.staff_id == staff_id,
            models.StaffAttendance.date == local_today(),
        )
    ).first()


@router.post("/attendance/checkin")
def check_in(
    body: models.CheckInOut,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ATTENDANCE_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    staff = _staff_for_attendance(session, body.staffId)
    if staff.status != models.StaffStatus.active:
        raise HTTPException(status_code=400, detail="Only active staff can check in")

    now = datetime.now(timezone.utc)
    record = _today_record(session, staff.id)
    if record and record.check_in and record.check_out:
        raise HTTPException(status_code=400, detail="Attendance already completed for today")
    if record and record.check_in:
        raise HTTPException(status_code=400, detail="Already checked in today")

    if record:
        record.check_in = now
        record.status = models.AttendanceStatus.present
    else:
        record = models.StaffAttendance(
            staff_id=staff.id,
            date=local_today(),
            check_in=now,
            status=models.AttendanceStatus.present,
        )
    session.add(record)
    session.commit()
    session.refresh(record)

    logger.info(f"{staff.name} checked in")
    return {
        "success": True,
        "message": f"{staff.name} checked in successfully",
        "attendance": serialize_attendance(record),
    }


@router.post("/attendance/checkout")
def check_out(
    body: models.CheckInOut,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ATTENDANCE_MANAGE))],
    session: Session = Depends(get_session),
) -> dict:
    staff = _staff_for_attendance(session, body.staffId)

    record = _today_record(session, staff.id)
    if record is None:
        raise HTTPException(status_code=400, detail="No attendance record found for today")
    if not record.check_in:
        raise HTTPException(status_code=400, detail="Cannot check out before checking in")
    if record.check_out:
        raise HTTPException(status_code=400, detail="Already checked out today")

    now = datetime.now(timezone.utc)
    worked_hours = round((now - _as_utc(record.check_in)).total_seconds() / 3600, 2)
    record.check_out = now
    record.status = (
        models.AttendanceStatus.half_day
        if 0 < worked_hours < HALF_DAY_HOURS
        else models.AttendanceStatus.present
    )
    session.add(record)
    session.commit()
    session.refresh(record)

    logger.info(f"{staff.name} checked out after {worked_hours}h")
    return {
        "success": True,
        "message": f"{staff.name} checked out successfully",
        "attendance": serialize_attendance(record),
        "workedHours": worked_hours,
    }


@router.get("/attendance")
def attendance_history(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.STAFF_READ))],
    session: Session = Depends(get_session),
    staffId: int | None = None,
    month: str | None = None,
) -> list[dict]:
    statement = select(models.StaffAttendance)
    if staffId is not None:
        statement = statement.where(models.StaffAttendance.staff_id == staffId)
    if month:
        try:
            first_day = datetime.strptime(month, "%Y-%m").date()
        except ValueError:
            raise HTTPException(status_code=400, detail="Month must be YYYY-MM")
        if first_day.month == 12:
            next_month = first_day.replace(year=first_day.year + 1, month=1)
        else:
            next_month = first_day.replace(month=first_day.month + 1)
        statement = statement.where(
            models.StaffAttendance.date >= first_day,
            models.StaffAttendance.date < next_month,
        )
    statement = statement.order_by(models.StaffAttendance.date.desc(), models.StaffAttendance.id.desc())
    return [serialize_attendance(r) for r in session.exec(statement).all()]
