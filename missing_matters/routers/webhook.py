import re
from typing import Optional
from xml.etree import ElementTree

from fastapi import APIRouter, Depends, Form
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.orm import Session

from missing_matters.database import get_db
from missing_matters.logging_config import get_logger
from missing_matters.schemas.webhook import InboundMessage
from missing_matters.services.capabilities import Capabilities, get_capabilities
from missing_matters.services.webhook_service import handle_inbound_message

logger = get_logger("webhook")

router = APIRouter(tags=["webhook"])

# Characters XML 1.0 cannot carry, even escaped
INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def build_twiml(message: str) -> str:
    """Wrap reply text in a Twilio messaging response."""
    response = ElementTree.Element("Response")
    ElementTree.SubElement(response, "Message").text = INVALID_XML_CHARS.sub("", message)
    return '<?xml version="1.0" encoding="UTF-8"?>' + ElementTree.tostring(response, encoding="unicode")


def _coerce_media_count(value: Optional[str]) -> int:
    try:
        return max(int((value or "0").strip()), 0)
    except ValueError:
        return 0


@router.post("/whatsapp/webhook")
def whatsapp_webhook(
    body: str = Form(default="", alias="Body"),
    sender: str = Form(default="", alias="From"),
    profile_name: Optional[str] = Form(default=None, alias="ProfileName"),
    num_media: Optional[str] = Form(default=None, alias="NumMedia"),
    media_url: Optional[str] = Form(default=None, alias="MediaUrl0"),
    db: Session = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities),
):
    """Handle an incoming WhatsApp message delivered by Twilio."""

    if not sender.strip():
        logger.warning("Webhook rejected: missing sender")
        return PlainTextResponse("Missing required parameters", status_code=400)

    inbound = InboundMessage(
        body=body or "",
        sender=sender.strip(),
        profile_name=profile_name or None,
        num_media=_coerce_media_count(num_media),
        media_url=media_url or None,
    )

    reply = handle_inbound_message(db, inbound, capabilities)

    try:
        return Response(content=build_twiml(reply), media_type="text/xml")
    except Exception:
        logger.exception("Error building WhatsApp reply")
        return PlainTextResponse("Error processing request", status_code=500)
