"""
Email memories: structured attributes layered over generic memories.

An email is stored as one generic memory whose content is a textual projection
(subject, body, sender, recipients), so semantic search matches on subject and
participants as well as the body. The structured attributes go to the emails
table keyed by the memory id, and a flat copy goes to the vector index.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import get_timeouts
from .content_store import utc_now
from .email_store import IEmailStore
from .errors import ValidationError
from .orchestrator import MemoryOrchestrator
from .policy import Stage, guarded_call
from .schema import EmailRecord, SearchHit
from .search_service import SearchEngine
from ..util.logging import logger

_DOMAIN_RE = re.compile(r"@([^@>]+)>?\s*$")


def extract_company(sender: str) -> Optional[str]:
    """
    Derive a company name from a sender address.

    Takes the domain after the last '@' (up to an optional closing '>'),
    drops the leading label when more than two remain, and returns the first
    label left: "Jane <jane@mail.acme.co.uk>" -> "acme".
    """
    if not sender:
        return None
    match = _DOMAIN_RE.search(sender)
    if not match:
        return None

    parts = match.group(1).strip().lower().split(".")
    if len(parts) > 2:
        parts = parts[1:]
    return parts[0] or None


@dataclass
class EmailPayload:
    subject: str
    body: str
    sender: str
    recipients: List[str] = field(default_factory=list)
    date: Optional[str] = None
    company: Optional[str] = None
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None


def build_projection(payload: EmailPayload) -> str:
    """Text that gets stored and embedded for an email."""
    recipients = ",".join(payload.recipients or [])
    return f"{payload.subject}\n{payload.body}\nFrom: {payload.sender}\nTo: {recipients}"


def index_attributes(payload: EmailPayload, company: Optional[str]) -> Dict[str, str]:
    """Flat attribute map stored alongside the email's vector."""
    return {
        "subject": payload.subject,
        "sender": payload.sender,
        "recipients": ",".join(payload.recipients or []),
        "date": payload.date or "",
        "company": company or "",
        "message_id": payload.message_id or "",
        "in_reply_to": payload.in_reply_to or "",
    }


def validate_payload(payload: EmailPayload) -> None:
    missing = [name for name in ("subject", "body", "sender")
               if not isinstance(getattr(payload, name), str) or not getattr(payload, name).strip()]
    if missing:
        raise ValidationError(f"Missing required email fields: {', '.join(missing)}")


class EmailMemoryService:
    """Structured record layer for the email domain."""

    def __init__(self, orchestrator: MemoryOrchestrator, search_engine: SearchEngine,
                 email_store: IEmailStore, timeouts: Optional[Dict[str, float]] = None):
        self.orchestrator = orchestrator
        self.search_engine = search_engine
        self.email_store = email_store
        self.timeouts = timeouts if timeouts is not None else get_timeouts()

    def _timeout(self) -> Optional[float]:
        return self.timeouts.get(Stage.STRUCTURED.value)

    async def create_structured(self, payload: EmailPayload, owner_id: str) -> str:
        """
        Store an email as a memory plus its structured attributes.

        The two writes are independent. If the structured write fails after
        the memory was created, the memory stays searchable without metadata
        and StoreError is raised carrying its id.
        """
        validate_payload(payload)

        company = payload.company or extract_company(payload.sender)
        attributes = index_attributes(payload, company)

        memory_id = await self.orchestrator.create(build_projection(payload), owner_id, attributes)

        record = EmailRecord(
            id=memory_id,
            owner_id=owner_id,
            memory_id=memory_id,
            sender=payload.sender,
            recipients=attributes["recipients"],
            subject=payload.subject,
            date=attributes["date"],
            company=company,
            message_id=attributes["message_id"],
            in_reply_to=attributes["in_reply_to"],
            created_at=utc_now(),
        )
        await guarded_call("create_structured", Stage.STRUCTURED, self.email_store.put(record),
                           self._timeout(), memory_id)
        logger.log_memory_operation("email_created", memory_id, owner_id, details={"company": company or ""})
        return memory_id

    async def list_structured(self, owner_id: str, company: Optional[str] = None) -> List[EmailRecord]:
        outcome = await guarded_call("list_structured", Stage.STRUCTURED,
                                     self.email_store.list(owner_id, company), self._timeout())
        return outcome.value

    async def get_structured(self, memory_id: str, owner_id: str) -> Optional[EmailRecord]:
        outcome = await guarded_call("get_structured", Stage.STRUCTURED,
                                     self.email_store.get_with_content(memory_id, owner_id),
                                     self._timeout(), memory_id)
        return outcome.value

    async def delete_structured(self, memory_id: str, owner_id: str) -> None:
        """
        Delete the structured row, then the memory's content and vector.

        The deletes run in sequence without rollback; a failure partway leaves
        the earlier deletes in place.
        """
        outcome = await guarded_call("delete_structured", Stage.STRUCTURED,
                                     self.email_store.delete(memory_id, owner_id),
                                     self._timeout(), memory_id)
        if outcome.value:
            logger.log_memory_operation("email_deleted", memory_id, owner_id)

        await self.orchestrator.delete(memory_id, owner_id)

    async def search_structured(self, query_text: str, owner_id: str, company: Optional[str] = None,
                                top_k: Optional[int] = None) -> List[SearchHit]:
        """
        Semantic search over emails, optionally restricted to one company.

        Records are resolved with a single batched join of the emails and
        memories tables over all candidate ids; hits keep the similarity order.
        """
        if not isinstance(query_text, str) or not query_text.strip():
            raise ValidationError("Missing query")

        attribute_filter = {"company": company} if company else None
        return await self.search_engine.search(
            query_text,
            owner_id,
            top_k=top_k,
            attribute_filter=attribute_filter,
            resolver=self.email_store.get_many_with_content,
            resolver_stage=Stage.STRUCTURED,
        )
