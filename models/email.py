"""Email message models used for preview delivery."""

from pydantic import BaseModel, ConfigDict, Field


class EmailAttachment(BaseModel):
    """An attachment or inline image (referenced as cid:<content_id>)."""

    filename: str
    content: bytes | str
    content_type: str | None = None
    content_id: str | None = None


class EmailEnvelope(BaseModel):
    """Addressing fields shared by every message.

    Preview delivery takes an envelope and fills in subject and bodies.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_address: str = Field(alias="from", description="Sender address")
    to: str | list[str]
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None
    reply_to: str | None = None
    headers: dict[str, str] | None = None
    attachments: list[EmailAttachment] | None = None


class EmailMessage(EmailEnvelope):
    """A complete email ready for an EmailService."""

    subject: str
    html: str
    text: str | None = None
