from fastapi import FastAPI, UploadFile, File, HTTPException, Form, Depends, Header
from fastapi.responses import Response
from sqlmodel import SQLModel, Session, create_engine, select
from sqlalchemy.exc import IntegrityError
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import uuid
import aiofiles
from arbitration import config, models, services
from arbitration.errors import (
    ArgumentLimitReached,
    CaseNotFound,
    ConcurrentUpdate,
    CounterSuperseded,
    ModelUnavailable,
    NotAParty,
)
from arbitration.judge import VerdictOrchestrator, resolve_side
from arbitration.store import CaseStore, case_to_read, next_case_number

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(config.DATABASE_URL, echo=False, connect_args=connect_args)
app = FastAPI(title="AI Arbitration API")

# Directory for uploaded files
UPLOAD_DIR = Path(config.UPLOAD_DIR)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"]
)

# Chosen once per process
_generate = services.select_generator(config.LLM_PROVIDER)
_options = services.default_options(config.LLM_PROVIDER)


@app.on_event("startup")
def on_startup():
    SQLModel.metadata.create_all(engine)


# ---- DEPENDENCIES ----
def get_engine():
    return engine


def get_generator():
    return _generate


def get_orchestrator(engine=Depends(get_engine), generate=Depends(get_generator)) -> VerdictOrchestrator:
    return VerdictOrchestrator(CaseStore(engine), generate, _options, config.MAX_ARGUMENTS)


def current_user(x_user_id: Optional[int] = Header(default=None), engine=Depends(get_engine)) -> models.User:
    """Caller identity, set by the gateway in front of this service."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Not authorized to access this route")
    with Session(engine) as sess:
        user = sess.get(models.User, x_user_id)
        if not user or not user.is_active:
            raise HTTPException(status_code=401, detail="Not authorized to access this route")
        return user


def _load_case(sess: Session, case_id: int) -> models.Case:
    case = sess.get(models.Case, case_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    return case


def _party_side(case: models.Case, user: models.User) -> models.Side:
    try:
        return resolve_side(case, user.id)
    except NotAParty:
        raise HTTPException(status_code=403, detail="You are not part of this case")


# Root route
@app.get("/")
def read_root():
    return {"message": "Welcome to the AI Arbitration API"}

# Favicon handler
@app.get("/favicon.ico")
def favicon():
    return Response(status_code=204)


# ---- USERS ----
@app.post("/users", status_code=201)
def register_user(payload: models.UserCreate, engine=Depends(get_engine)):
    """Register a lawyer"""
    with Session(engine) as sess:
        email = payload.email.lower()
        if sess.exec(select(models.User).where(models.User.email == email)).first():
            raise HTTPException(status_code=400, detail="Email already registered")
        user = models.User(
            name=payload.name,
            email=email,
            role=models.Role(payload.role),
            phone=payload.phone,
            bar_registration=payload.bar_registration,
        )
        sess.add(user)
        sess.commit()
        sess.refresh(user)
        return user


@app.get("/users/me")
def read_me(user: models.User = Depends(current_user)):
    return user


# ---- CASE CREATION ----
@app.post("/cases", status_code=201)
def create_case(payload: models.CaseCreate, user: models.User = Depends(current_user), engine=Depends(get_engine)):
    """Create a new case, the caller becomes Lawyer A"""
    try:
        with Session(engine) as sess:
            case = models.Case(
                case_number=next_case_number(sess),
                title=payload.title,
                description=payload.description,
                category=payload.category,
                jurisdiction=payload.jurisdiction or config.DEFAULT_JURISDICTION,
                lawyer_a_id=user.id,
            )
            sess.add(case)
            sess.commit()
            sess.refresh(case)
            logger.info("Case %s created by user %s", case.case_number, user.id)
            return case_to_read(sess, case)
    except IntegrityError as e:
        raise HTTPException(status_code=409, detail=f"Error creating case: {str(e.orig)}")


# ---- GET MY CASES ----
@app.get("/cases")
def get_my_cases(user: models.User = Depends(current_user), engine=Depends(get_engine)):
    """Cases where the caller is Lawyer A or Lawyer B"""
    with Session(engine) as sess:
        cases = sess.exec(
            select(models.Case)
            .where((models.Case.lawyer_a_id == user.id) | (models.Case.lawyer_b_id == user.id))
            .order_by(models.Case.created_at.desc(), models.Case.id.desc())
        ).all()
        return {"cases": cases, "count": len(cases)}


# ---- GET ALL CASES ----
@app.get("/cases/public")
def get_public_cases(user: models.User = Depends(current_user), engine=Depends(get_engine)):
    """All cases, for browsing"""
    with Session(engine) as sess:
        cases = sess.exec(
            select(models.Case).order_by(models.Case.created_at.desc(), models.Case.id.desc())
        ).all()
        return {"cases": cases, "count": len(cases)}


# ---- GET SINGLE CASE ----
@app.get("/cases/{case_id}")
def get_case(case_id: int, user: models.User = Depends(current_user), engine=Depends(get_engine)):
    """Case details with arguments and the current verdict"""
    with Session(engine) as sess:
        case = _load_case(sess, case_id)
        _party_side(case, user)
        return case_to_read(sess, case)


# ---- JOIN CASE ----
@app.post("/cases/{case_id}/join")
def join_case(case_id: int, user: models.User = Depends(current_user), engine=Depends(get_engine)):
    """Join as Lawyer B"""
    with Session(engine) as sess:
        case = _load_case(sess, case_id)
        if case.lawyer_b_id is not None:
            raise HTTPException(status_code=400, detail="Lawyer B is already assigned to this case")
        if case.lawyer_a_id == user.id:
            raise HTTPException(status_code=400, detail="You cannot join your own case as Lawyer B")
        case.lawyer_b_id = user.id
        case.status = models.CaseStatus.SUBMITTED
        case.version += 1
        case.updated_at = datetime.utcnow()
        sess.add(case)
        sess.commit()
        sess.refresh(case)
        return case_to_read(sess, case)


# ---- UPDATE STATUS ----
@app.put("/cases/{case_id}/status")
def update_status(case_id: int, payload: models.StatusUpdate, user: models.User = Depends(current_user),
                  engine=Depends(get_engine)):
    """Only Lawyer A can change the status"""
    with Session(engine) as sess:
        case = _load_case(sess, case_id)
        if case.lawyer_a_id != user.id:
            raise HTTPException(status_code=403, detail="Only Lawyer A can update case status")
        case.status = payload.status
        case.version += 1
        case.updated_at = datetime.utcnow()
        sess.add(case)
        sess.commit()
        sess.refresh(case)
        return case_to_read(sess, case)


# ---- DOCUMENT UPLOAD ----
@app.post("/cases/{case_id}/documents", status_code=201)
async def add_document(
    case_id: int,
    file: Optional[UploadFile] = File(None),
    document_name: Optional[str] = Form(None),
    document_url: Optional[str] = Form(None),
    document_type: Optional[str] = Form(None),
    user: models.User = Depends(current_user),
    engine=Depends(get_engine),
):
    """Attach a document: either an uploaded file or an external URL"""
    with Session(engine) as sess:
        case = _load_case(sess, case_id)
        side = _party_side(case, user)

        if file is not None and file.filename:
            filename = f"{uuid.uuid4().hex}_{Path(file.filename).name}"
            dest = UPLOAD_DIR / filename
            async with aiofiles.open(dest, "wb") as out:
                content = await file.read()
                await out.write(content)

            doc = models.Document(
                case_id=case_id,
                side=side,
                name=file.filename,
                content_type=file.content_type,
                provider="local",
                stored_path=str(dest),
                extracted_text=services.extract_text_from_file(dest),
            )
        else:
            if not document_name or not document_url or not document_type:
                raise HTTPException(
                    status_code=400,
                    detail="Please provide document_name, document_url, and document_type when not uploading a file",
                )
            doc = models.Document(
                case_id=case_id,
                side=side,
                name=document_name,
                url=document_url,
                content_type=document_type,
                provider="external",
            )
        sess.add(doc)
        sess.commit()
        sess.refresh(doc)
        return doc


# ---- GET CASE DOCUMENTS ----
@app.get("/cases/{case_id}/documents")
def get_documents(case_id: int, user: models.User = Depends(current_user), engine=Depends(get_engine)):
    """All documents for a case"""
    with Session(engine) as sess:
        case = _load_case(sess, case_id)
        _party_side(case, user)
        docs = sess.exec(
            select(models.Document).where(models.Document.case_id == case_id).order_by(models.Document.id)
        ).all()
        return {"documents": docs, "count": len(docs)}


def _stored_summaries(engine, case_id: int):
    with Session(engine) as sess:
        docs = sess.exec(
            select(models.Document).where(models.Document.case_id == case_id).order_by(models.Document.id)
        ).all()
        return [
            models.DocumentSummary(
                name=d.name,
                summary=(d.extracted_text or "").strip()[:config.DOCUMENT_EXCERPT_CHARS] or (d.url or "No text extracted"),
            )
            for d in docs
        ]


# ---- AI VERDICT ----
@app.post("/judge/{case_id}/verdict")
def request_verdict(
    case_id: int,
    payload: Optional[models.VerdictRequest] = None,
    user: models.User = Depends(current_user),
    engine=Depends(get_engine),
    judge: VerdictOrchestrator = Depends(get_orchestrator),
):
    """Generate the initial AI verdict"""
    payload = payload or models.VerdictRequest()
    summaries = payload.document_summaries
    if not summaries and payload.use_documents:
        summaries = _stored_summaries(engine, case_id)
    try:
        verdict = judge.request_verdict(case_id, summaries)
    except CaseNotFound:
        raise HTTPException(status_code=404, detail="Case not found")
    except ModelUnavailable as e:
        raise HTTPException(status_code=502, detail={"message": "LLM call failed", "argument_saved": False, "error": str(e)})
    except ConcurrentUpdate as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": "AI verdict generated", "ai_verdict": verdict}


# ---- ARGUMENT ----
@app.post("/judge/{case_id}/argument")
def submit_argument(
    case_id: int,
    payload: models.ArgumentCreate,
    user: models.User = Depends(current_user),
    engine=Depends(get_engine),
    judge: VerdictOrchestrator = Depends(get_orchestrator),
):
    """Submit a follow-up argument and have the AI reconsider"""
    try:
        outcome = judge.submit_argument(case_id, user.id, payload.text)
    except CaseNotFound:
        raise HTTPException(status_code=404, detail="Case not found")
    except NotAParty:
        raise HTTPException(status_code=403, detail="You are not part of this case")
    except ArgumentLimitReached as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ModelUnavailable as e:
        raise HTTPException(
            status_code=502,
            detail={
                "message": "Argument saved, AI reconsideration failed",
                "argument_saved": e.argument_saved,
                "side": e.side.value if e.side else None,
                "argument": e.argument.model_dump(mode="json") if e.argument else None,
                "error": str(e),
            },
        )
    except CounterSuperseded as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": "Argument saved, a newer argument superseded this reconsideration",
                "argument_saved": True,
                "side": e.side,
                "argument": e.argument.model_dump(mode="json") if e.argument else None,
            },
        )
    except ConcurrentUpdate as e:
        raise HTTPException(status_code=409, detail=str(e))

    with Session(engine) as sess:
        case = _load_case(sess, case_id)
        return {
            "message": "Argument submitted and AI reconsidered",
            "side": outcome.side.value,
            "argument": outcome.argument,
            "ai_verdict": outcome.verdict,
            "case": case_to_read(sess, case),
        }


# ---- HEALTH CHECK ----
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "AI Arbitration API", "llm_provider": config.LLM_PROVIDER}
