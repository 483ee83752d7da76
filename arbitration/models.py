from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional, List
from pydantic import BaseModel, field_validator
from pydantic import Field as Constraint
from datetime import datetime
from enum import Enum


class Side(str, Enum):
    A = "A"
    B = "B"


class Verdict(str, Enum):
    FAVOR_A = "Favor of A"
    FAVOR_B = "Favor of B"
    NEUTRAL = "Neutral"


class CaseStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    IN_HEARING = "in_hearing"
    CLOSED = "closed"


class Category(str, Enum):
    CIVIL = "Civil"
    CRIMINAL = "Criminal"
    CORPORATE = "Corporate"
    FAMILY = "Family"
    PROPERTY = "Property"
    OTHER = "Other"


class Role(str, Enum):
    LAWYER_A = "lawyerA"
    LAWYER_B = "lawyerB"
    JUDGE = "judge"


# ---- Tables ----

class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    role: Role = Role.LAWYER_A
    phone: Optional[str] = None
    bar_registration: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Case(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    case_number: str = Field(index=True, unique=True)
    title: str
    description: str
    category: Category
    jurisdiction: str = "India"
    status: CaseStatus = CaseStatus.DRAFT
    lawyer_a_id: int = Field(foreign_key="user.id")
    lawyer_b_id: Optional[int] = Field(default=None, foreign_key="user.id")

    # Latest AI verdict, replaced as a whole
    ai_verdict: Optional[Verdict] = None
    ai_reasoning: Optional[str] = None
    ai_confidence: Optional[int] = None
    ai_decided_at: Optional[datetime] = None

    # Written only by CaseStore through the ledger
    argument_count_a: int = 0
    argument_count_b: int = 0
    version: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Argument(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("case_id", "side", "position"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    case_id: int = Field(foreign_key="case.id", index=True)
    side: Side
    position: int
    text: str
    counter: str = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    countered_at: Optional[datetime] = None


class Document(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    case_id: int = Field(foreign_key="case.id", index=True)
    side: Side
    name: str
    url: Optional[str] = None
    content_type: Optional[str] = None
    provider: str = "external"
    stored_path: Optional[str] = None
    extracted_text: Optional[str] = ""
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)


# ---- Value types ----

class VerdictRecord(BaseModel):
    verdict: Verdict
    confidence: int = Constraint(ge=0, le=100)
    reasoning: str


class AiVerdict(VerdictRecord):
    decided_at: datetime


class ArgumentEntry(BaseModel):
    position: int
    text: str
    counter: str = ""
    timestamp: datetime
    countered_at: Optional[datetime] = None


class DocumentSummary(BaseModel):
    name: str
    summary: str


# ---- Requests ----

class UserCreate(BaseModel):
    name: str = Constraint(min_length=3)
    email: str
    role: Optional[str] = Role.LAWYER_A.value
    phone: Optional[str] = None
    bar_registration: Optional[str] = ""

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v):
        # "lawyer" is accepted for older clients
        if v in (None, "", "lawyer"):
            return Role.LAWYER_A.value
        return Role(v).value


class CaseCreate(BaseModel):
    title: str = Constraint(min_length=1)
    description: str = Constraint(min_length=1)
    category: Category
    jurisdiction: Optional[str] = None


class StatusUpdate(BaseModel):
    status: CaseStatus


class VerdictRequest(BaseModel):
    document_summaries: List[DocumentSummary] = []
    use_documents: bool = False


class ArgumentCreate(BaseModel):
    text: str

    @field_validator("text")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("text must not be empty")
        return v


# ---- Responses ----

class CaseRead(BaseModel):
    id: int
    case_number: str
    title: str
    description: str
    category: Category
    jurisdiction: str
    status: CaseStatus
    lawyer_a_id: int
    lawyer_b_id: Optional[int] = None
    ai_verdict: Optional[AiVerdict] = None
    arguments_a: List[ArgumentEntry] = []
    arguments_b: List[ArgumentEntry] = []
    argument_count_a: int = 0
    argument_count_b: int = 0
    created_at: datetime
    updated_at: datetime
