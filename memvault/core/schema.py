"""
Record types shared by the stores, the orchestrator and the search engine.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass
class Memory:
    id: str
    owner_id: str
    content: str
    created_at: str


@dataclass
class EmailRecord:
    """Structured attributes of an email memory; `id` is the memory's id."""
    id: str
    owner_id: str
    memory_id: str
    sender: str
    recipients: str
    subject: str
    date: str
    company: Optional[str]
    message_id: str
    in_reply_to: str
    created_at: str
    content: Optional[str] = None  # filled when joined with the memories table

    @property
    def recipient_list(self) -> List[str]:
        return [r for r in self.recipients.split(",") if r] if self.recipients else []

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchHit:
    """A ranked vector hit merged with its backing record. Never persisted."""
    id: str
    score: float
    record: Any
    attributes: Dict[str, Any] = field(default_factory=dict)
