from typing import Literal, List, Optional
from pydantic import BaseModel, Field

from dltspec.models import NeedsInput

ResultStatus = Literal["success", "needs_input", "failed"]

class DocumentRef(BaseModel):
    path: str
    size_bytes: int
    hash_sha256: str

class DocumentResult(BaseModel):
    status: ResultStatus
    api_name: str
    phase: Optional[str] = None
    template_id: Optional[str] = None
    document: Optional[DocumentRef] = None
    merged_appendices: List[str] = Field(default_factory=list)
    needs_input: List[NeedsInput] = Field(default_factory=list)
    next_phase: Optional[str] = None
    error_message: Optional[str] = None

class TemplateInfo(BaseModel):
    id: str
    kind: Literal["template", "appendix"]
    title: Optional[str] = None
    target_anchor: Optional[str] = None
    placeholders: List[str] = Field(default_factory=list)
    required: List[str] = Field(default_factory=list)

class ReadDocumentResult(BaseModel):
    content: str
    truncated: bool
    total_chars: int
