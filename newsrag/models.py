"""
Domain Models

Plain dataclasses shared by retrieval, caching, warming and session history.
Each model converts to and from the camelCase JSON shape used in the cache
and in HTTP responses.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class Article:
    """A news article as produced by ingestion. `link` is its unique id."""
    title: str
    link: str
    full_content: str = ""
    pub_date: Optional[str] = None
    embedding: List[float] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Payload stored alongside the vector in the index."""
        return {
            'title': self.title,
            'link': self.link,
            'fullContent': self.full_content,
            'pubDate': self.pub_date,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {**self.to_payload(), 'embedding': list(self.embedding)}


@dataclass
class Passage:
    """A retrieval result with its similarity score."""
    id: str
    score: float
    title: str
    link: str
    full_content: str
    pub_date: Optional[str] = None

    @classmethod
    def from_hit(cls, point_id: Any, score: float, payload: Optional[Dict[str, Any]]) -> 'Passage':
        payload = payload or {}
        return cls(
            id=str(point_id),
            score=float(score),
            title=payload.get('title') or '',
            link=payload.get('link') or '',
            full_content=payload.get('fullContent') or '',
            pub_date=payload.get('pubDate'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'score': self.score,
            'title': self.title,
            'link': self.link,
            'fullContent': self.full_content,
            'pubDate': self.pub_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Passage':
        return cls(
            id=str(data['id']),
            score=float(data['score']),
            title=data.get('title', ''),
            link=data.get('link', ''),
            full_content=data.get('fullContent', ''),
            pub_date=data.get('pubDate'),
        )


@dataclass
class CacheBundle:
    """Cached passages and synthesized answer for one normalized query."""
    passages: List[Passage]
    answer: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'passages': [p.to_dict() for p in self.passages],
            'answer': self.answer,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheBundle':
        return cls(
            passages=[Passage.from_dict(p) for p in data.get('passages', [])],
            answer=data['answer'],
        )


@dataclass
class SessionHistoryEntry:
    """One answered query in a session's history."""
    query: str
    passages: List[Passage]
    answer: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'passages': [p.to_dict() for p in self.passages],
            'answer': self.answer,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionHistoryEntry':
        return cls(
            query=data['query'],
            passages=[Passage.from_dict(p) for p in data.get('passages', [])],
            answer=data['answer'],
            timestamp=data.get('timestamp', ''),
        )


@dataclass(frozen=True)
class TrendingCandidate:
    """A warm-up query, either trending or popular."""
    query_text: str
    number_of_passages: int = 5

    def to_dict(self) -> Dict[str, Any]:
        return {
            'queryText': self.query_text,
            'numberOfPassages': self.number_of_passages,
        }
