from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class ErrorInfo(BaseModel):
    msg: str
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, page_size: int, total: int) -> "Pagination":
        return cls(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=(total + page_size - 1) // page_size if page_size else 0,
        )


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class SideEffectOutcome(BaseModel):
    """Result of a best-effort step run after a transition was committed."""
    name: str
    ok: bool
    skipped: bool = False
    error: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
