"""
DumpWatch - REST API

FastAPI application for submitting dump reports and reading their
crowd-verification status and user reputation.

Run with: uvicorn dumpwatch.api.main:app --reload
"""

import logging
from datetime import datetime
from typing import Optional, List

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from dumpwatch import __version__
from dumpwatch.core.config import settings
from dumpwatch.core.entities import ReportStatus
from dumpwatch.core.exceptions import (
    DuplicatePhoto,
    InvalidPhoto,
    ReportNotFound,
    StoreConflict,
    ValidationError,
)
from dumpwatch.core.logging import setup_logging
from dumpwatch.crowdsource.consensus import ConsensusEngine, ConsensusSettings
from dumpwatch.crowdsource.report_handler import ReportHandler
from dumpwatch.database.factory import create_store

setup_logging()
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="DumpWatch",
    description="Citizen reporting of illegal waste dumps with crowd verification",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    debug=settings.debug,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Pydantic Models
# ============================================================================

class DumpReportRequest(BaseModel):
    """Request to submit a dump report."""
    model_config = ConfigDict(populate_by_name=True)

    latitude: float
    longitude: float
    photo_base64: str = Field(..., alias="photoBase64")
    size: str = Field(..., description="SMALL, MEDIUM or LARGE")
    description: Optional[str] = None


class DumpReportResponse(BaseModel):
    """Dump report. The photo itself is never returned."""
    id: int
    reporter_id: str
    latitude: float
    longitude: float
    size: str
    photo_hash: str
    description: Optional[str]
    status: str
    created_at: str
    verification_count: int


class VerificationResponse(BaseModel):
    verifier_id: str
    created_at: str


class DumpReportDetailResponse(DumpReportResponse):
    """Dump report with its verifiers."""
    verifications: List[VerificationResponse]


class SubmitReportResponse(BaseModel):
    """Result of a dump report submission."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    report: DumpReportResponse
    verification_count: int = Field(..., alias="verificationCount")
    is_verified: bool = Field(..., alias="isVerified")


class DumpListResponse(BaseModel):
    """List of dump reports."""
    count: int
    dumps: List[DumpReportResponse]


class ReputationResponse(BaseModel):
    """User reputation."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str
    score: int
    verified_reports: int = Field(..., alias="verifiedReports")
    false_reports: int = Field(..., alias="falseReports")
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """API health check response."""
    status: str
    version: str
    timestamp: str
    store: str


# ============================================================================
# Dependencies
# ============================================================================

_store = create_store(settings)
_engine = ConsensusEngine(_store, ConsensusSettings.from_settings(settings))
_report_handler = ReportHandler(_store)
logger.info(f"DumpWatch API ready ({settings.app_env}, {_store.backend} store)")


def get_engine() -> ConsensusEngine:
    return _engine


def get_report_handler() -> ReportHandler:
    return _report_handler


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, established by the authentication layer in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


def _report_response(report, verification_count: int) -> DumpReportResponse:
    return DumpReportResponse(
        id=report.id,
        reporter_id=report.reporter_id,
        latitude=report.latitude,
        longitude=report.longitude,
        size=report.size.value,
        photo_hash=report.photo_hash,
        description=report.description,
        status=report.status.value,
        created_at=report.created_at.isoformat(),
        verification_count=verification_count,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": {"error": "Validation failed", "details": jsonable_encoder(exc.errors())}},
    )


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.utcnow().isoformat(),
        store=_store.backend,
    )


@app.post(
    "/api/v1/dumps/report",
    response_model=SubmitReportResponse,
    status_code=201,
    tags=["Dumps"],
)
def report_dump(
    request: DumpReportRequest,
    user_id: str = Depends(get_current_user_id),
    engine: ConsensusEngine = Depends(get_engine),
):
    """
    Submit a dump report with a photo.

    Nearby reports from other users corroborate each other; a report with
    two distinct verifiers becomes VERIFIED and its verifiers earn reputation.
    """
    try:
        result = engine.submit_report(
            reporter_id=user_id,
            latitude=request.latitude,
            longitude=request.longitude,
            photo=request.photo_base64,
            size=request.size,
            description=request.description,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "Validation failed", "details": e.details},
        )
    except InvalidPhoto as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid photo format", "message": str(e)},
        )
    except DuplicatePhoto:
        raise HTTPException(
            status_code=409,
            detail={
                "error": "Photo already used",
                "message": "This photo has already been submitted. Please take a new photo.",
            },
        )
    except StoreConflict:
        raise HTTPException(
            status_code=503,
            detail={"error": "Too many concurrent reports in this area, please retry"},
        )
    except Exception:
        logger.exception(f"Report dump error for user {user_id}")
        raise HTTPException(status_code=500, detail={"error": "Failed to submit report"})

    return SubmitReportResponse(
        message="Dump report submitted successfully",
        report=_report_response(result.report, result.verification_count),
        verification_count=result.verification_count,
        is_verified=result.is_verified,
    )


@app.get("/api/v1/dumps", response_model=DumpListResponse, tags=["Dumps"])
def list_dumps(
    status: Optional[ReportStatus] = Query(None, description="UNVERIFIED or VERIFIED"),
    my_reports: bool = Query(False, alias="myReports", description="Only the caller's reports"),
    user_id: str = Depends(get_current_user_id),
    handler: ReportHandler = Depends(get_report_handler),
):
    """List dump reports, newest first."""
    summaries = handler.list_reports(
        status=status,
        reporter_id=user_id if my_reports else None,
    )
    return DumpListResponse(
        count=len(summaries),
        dumps=[_report_response(s.report, s.verification_count) for s in summaries],
    )


@app.get("/api/v1/dumps/user/reputation", response_model=ReputationResponse, tags=["Dumps"])
def get_user_reputation(
    user_id: str = Depends(get_current_user_id),
    handler: ReportHandler = Depends(get_report_handler),
):
    """Get the caller's reputation score."""
    reputation = handler.get_reputation(user_id)
    if reputation is None:
        return ReputationResponse(
            user_id=user_id,
            score=0,
            verified_reports=0,
            false_reports=0,
            message="No reputation score found",
        )

    return ReputationResponse(
        user_id=reputation.user_id,
        score=reputation.score,
        verified_reports=reputation.verified_reports,
        false_reports=reputation.false_reports,
    )


@app.get("/api/v1/dumps/{report_id}", response_model=DumpReportDetailResponse, tags=["Dumps"])
def get_dump(
    report_id: int,
    user_id: str = Depends(get_current_user_id),
    handler: ReportHandler = Depends(get_report_handler),
):
    """Get a dump report with its verifiers."""
    try:
        details = handler.get_report(report_id)
    except ReportNotFound:
        raise HTTPException(status_code=404, detail="Dump report not found")

    base = _report_response(details.report, details.verification_count)
    return DumpReportDetailResponse(
        **base.model_dump(),
        verifications=[
            VerificationResponse(
                verifier_id=v.verifier_id,
                created_at=v.created_at.isoformat(),
            )
            for v in details.verifications
        ],
    )


@app.get("/api/v1/dumps/stats/summary", tags=["Dumps"])
def get_dump_statistics(
    user_id: str = Depends(get_current_user_id),
    handler: ReportHandler = Depends(get_report_handler),
):
    """Report counts by status and size."""
    return handler.get_statistics()


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
