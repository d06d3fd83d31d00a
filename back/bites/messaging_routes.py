"""
Customer contacts and outbound SMS / email campaigns.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy import or_
from sqlmodel import Session, select

from . import email_service, models, sms_service
from .db import get_session
from .permissions import Permissions
from .security import PermissionChecker
from .sms_service import MessagingError

logger = logging.getLogger(__name__)

router = APIRouter()


def serialize_contact(contact: models.CustomerContact) -> dict:
    return {
        "id": contact.id,
        "contactNo": contact.contact_no,
        "email": contact.email,
        "createdAt": contact.created_at.isoformat(),
    }


# ============ CONTACTS ============

@router.post("/customercontact")
def save_customer_contact(
    contact_in: models.CustomerContactCreate,
    session: Session = Depends(get_session),
) -> dict:
    """Public signup; an existing contact with the same number or email is returned as is."""
    contact_no = (contact_in.contactNo or "").strip() or None
    email = (contact_in.email or "").strip().lower() or None
    if not contact_no and not email:
        raise HTTPException(status_code=400, detail="Contact number or email is required")

    conditions = []
    if contact_no:
        conditions.append(models.CustomerContact.contact_no == contact_no)
    if email:
        conditions.append(models.CustomerContact.email == email)
    contact = session.exec(select(models.CustomerContact).where(or_(*conditions))).first()

    if contact is None:
        contact = models.CustomerContact(contact_no=contact_no, email=email)
        session.add(contact)
        session.commit()
        session.refresh(contact)

    return {"success": True, "contact": serialize_contact(contact)}


@router.get("/customercontact")
def list_customer_contacts(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MESSAGES_SEND))],
    session: Session = Depends(get_session),
) -> list[dict]:
    contacts = session.exec(
        select(models.CustomerContact).order_by(
            models.CustomerContact.created_at.desc(), models.CustomerContact.id.desc()
        )
    ).all()
    return [serialize_contact(c) for c in contacts]


# ============ SENDING ============

@router.post("/sendmessage")
async def send_message(
    body: models.SendMessage,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MESSAGES_SEND))],
) -> dict:
    if not body.contactNo or not body.message:
        raise HTTPException(status_code=400, detail="Contact number and message are required")

    try:
        sid = await sms_service.send_sms(body.contactNo, body.message)
    except MessagingError as e:
        if not e.configured:
            raise HTTPException(status_code=503, detail="SMS service is not configured")
        raise HTTPException(status_code=502, detail="Failed to send message")

    logger.info(f"SMS {sid} sent by {current_user.username}")
    return {"success": True, "sid": sid}


@router.post("/sendbulkmessage")
async def send_bulk_message(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.MESSAGES_SEND))],
    type: Annotated[str | None, Form()] = None,
    message: Annotated[str | None, Form()] = None,
    emails: Annotated[list[str], Form(alias="emails[]")] = [],
    image: Annotated[UploadFile | None, File()] = None,
) -> dict:
    """Email campaign to a list of recipients with an optional image attachment."""
    if type != "email":
        raise HTTPException(status_code=400, detail="Invalid type")
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    recipients = [e.strip() for e in emails if e and e.strip()]
    if not recipients:
        raise HTTPException(status_code=400, detail="At least one email is required")

    if not email_service.is_configured():
        raise HTTPException(status_code=503, detail="Email service is not configured")

    attachments = None
    if image is not None and image.filename:
        data = await image.read()
        if data:
            attachments = [(image.filename, data)]

    results = await email_service.send_bulk_email(recipients, message, attachments)
    sent = sum(1 for r in results if r["sent"])
    logger.info(f"Bulk email by {current_user.username}: {sent}/{len(results)} delivered")
    return {"success": True, "results": results}
