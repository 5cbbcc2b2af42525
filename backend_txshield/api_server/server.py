"""
FastAPI server for pre-signing transaction checks.

POST /api/threat-check always answers with a usable assessment: a body
that cannot be parsed yields a conservative SUSPICIOUS payload rather
than an HTTP error. /api/alternatives and /api/simulate reject such a
body with 400.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from backend_txshield import __version__
from backend_txshield.analysis_engine.models import TransactionRequest
from backend_txshield.analysis_engine.scorer import malformed_input_response
from backend_txshield.analysis_engine.service import ThreatCheckService
from backend_txshield.core.exceptions import MalformedInput
from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Request model and parsing
# -----------------------------------------------------------------------------

class TransactionRequestBody(BaseModel):
    """Unsigned transaction as sent by the wallet front end."""

    model_config = ConfigDict(populate_by_name=True)

    to: str | None = Field(None, description="Destination address; absent for contract deployment")
    data: str | None = Field("0x", description="Calldata, 0x-prefixed hex")
    value: int | str | None = Field("0", description="Value in wei (decimal or 0x hex)")
    from_: str | None = Field(None, alias="from", description="Sender address")
    chainId: int | str | None = Field(1, description="EIP-155 chain id (int or hex string)")

    def to_transaction(self) -> TransactionRequest:
        return TransactionRequest.create(
            to=self.to,
            data=self.data,
            value=self.value,
            from_=self.from_,
            chain_id=self.chainId,
        )


async def parse_transaction(request: Request) -> TransactionRequest:
    """Read and normalize the JSON body. Raises MalformedInput."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise MalformedInput("Request body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise MalformedInput("Request body must be a JSON object")
    try:
        body = TransactionRequestBody.model_validate(payload)
    except ValueError as e:
        raise MalformedInput(f"Invalid transaction fields: {e}") from e
    return body.to_transaction()


# -----------------------------------------------------------------------------
# Lifespan and dependency
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service (cache + collaborators) from the environment once per process."""
    if getattr(app.state, "service", None) is None:
        app.state.service = ThreatCheckService.from_env()
    logger.info("api_service_ready", cache_ttl_sec=app.state.service.cache.ttl_sec)
    yield
    logger.info("api_service_stopped", cached_entries=len(app.state.service.cache))


def get_service(request: Request) -> ThreatCheckService:
    """Dependency: the process-wide ThreatCheckService."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        service = ThreatCheckService.from_env()
        request.app.state.service = service
    return service


# -----------------------------------------------------------------------------
# App and routes
# -----------------------------------------------------------------------------

app = FastAPI(
    title="Backend TX Shield API",
    description="Pre-signing threat checks, safer alternatives and static simulation for Ethereum transactions.",
    version=__version__,
    lifespan=lifespan,
)


@app.post("/api/threat-check")
async def threat_check(request: Request, service: ThreatCheckService = Depends(get_service)) -> JSONResponse:
    """Classify and score one transaction. Never fails on bad input."""
    try:
        tx = await parse_transaction(request)
    except MalformedInput as e:
        logger.warning("threat_check_malformed_input", error=str(e))
        return JSONResponse(content=malformed_input_response(str(e)))
    try:
        assessment = await service.assess(tx)
    except Exception as e:
        logger.exception("threat_check_failed", fingerprint=tx.fingerprint, error=str(e))
        return JSONResponse(content=malformed_input_response(str(e) or type(e).__name__))
    return JSONResponse(content=assessment.to_response())


@app.post("/api/alternatives")
async def alternatives(request: Request, service: ThreatCheckService = Depends(get_service)) -> JSONResponse:
    """Safer rewrites of the transaction; never an empty list."""
    try:
        tx = await parse_transaction(request)
    except MalformedInput as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    alts = await service.alternatives(tx)
    return JSONResponse(content={"alternatives": [a.to_dict() for a in alts]})


@app.post("/api/simulate")
async def simulate(request: Request, service: ThreatCheckService = Depends(get_service)) -> JSONResponse:
    """Static gas estimate, MEV exposure for swaps, and warnings."""
    try:
        tx = await parse_transaction(request)
    except MalformedInput as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    result: dict[str, Any] = await service.simulate(tx)
    return JSONResponse(content=result)


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness probe: API is up."""
    return {"status": "ok"}


@app.exception_handler(HTTPException)
def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
    """Consistent JSON error response for HTTPException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )
