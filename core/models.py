# core/models.py
"""
Value objects passed between the renderer, the dispatch gateway and the API
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.exceptions import InvalidBlogPost

# Fields forwarded to the queue; anything else in the client payload is dropped
QUEUED_BLOG_FIELDS = ('id', 'title', 'content', 'excerpt', 'cover_image', 'slug')


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class BlogPost:
    """Read-only blog record used to render a notification"""
    title: str
    content: str
    slug: Optional[str] = None
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    id: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]],
                  require_content: bool = True) -> 'BlogPost':
        """
        Build a BlogPost from a JSON-like mapping

        Queued deliveries pass require_content=False; a stored post with an
        empty body still renders with its title.

        Raises:
            InvalidBlogPost: when data is not a mapping, the title is blank, or
                the content is blank while required
        """
        if not isinstance(data, dict):
            raise InvalidBlogPost("Invalid blog data")

        title = _clean(data.get('title'))
        content = data.get('content')
        if not isinstance(content, str):
            content = ''
        if not title or (require_content and not content.strip()):
            raise InvalidBlogPost("Invalid blog data")

        return cls(
            title=title,
            content=content,
            slug=_clean(data.get('slug')),
            excerpt=_clean(data.get('excerpt')),
            cover_image=_clean(data.get('cover_image')),
            id=data.get('id'),
        )

    def to_queue_payload(self) -> Dict[str, Any]:
        data = asdict(self)
        return {key: data[key] for key in QUEUED_BLOG_FIELDS}


@dataclass(frozen=True)
class EmailMessage:
    """Rendered email for a single recipient, never persisted"""
    recipient: str
    subject: str
    html_body: str
    text_body: Optional[str] = None


@dataclass
class DeliveryResult:
    """Outcome of a direct SMTP submission"""
    recipient: str
    message_id: str
    smtp_code: Optional[int]
    smtp_message: Optional[str]
    sent_at: datetime


@dataclass
class DispatchJob:
    """Acknowledgment of a message published to the queue"""
    target_url: str
    payload: Dict[str, Any]
    retries: int
    message_id: Optional[str] = None


@dataclass
class DeliveryReport:
    """Aggregate of a direct multi-recipient send"""
    total: int
    sent: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


@dataclass
class Program:
    id: Any
    title: str
    description: Optional[str]
    is_active: bool
    created_at: Optional[str]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Program':
        return cls(
            id=row.get('id'),
            title=row.get('title') or '',
            description=row.get('description'),
            is_active=bool(row.get('is_active')),
            created_at=row.get('created_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
