import logging

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from creditmemo.api.routes import router
from creditmemo.core.config import settings
from creditmemo.core.exceptions import AttachmentError
from creditmemo.core.exceptions import ConfigurationError
from creditmemo.core.exceptions import JSONParsingError
from creditmemo.core.exceptions import LLMError
from creditmemo.core.exceptions import PipelineError
from creditmemo.core.logging import setup_logging

setup_logging()

app = FastAPI(title="CreditMemo Workflow")

logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup_event() -> None:
    logger.info("Application started: default provider=%s", settings.default_provider)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.error(f"HTTP exception: {exc.detail} (status: {exc.status_code})")
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.error("Request validation failed: %s", exc.errors(), exc_info=False)
    return JSONResponse(
        {"error": "Input validation failed", "details": _jsonable_errors(exc)},
        status_code=422,
    )


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.exception_handler(AttachmentError)
async def attachment_exception_handler(_request: Request, exc: AttachmentError) -> JSONResponse:
    logger.error(f"Attachment error: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(_request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Configuration error: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.exception_handler(LLMError)
async def llm_exception_handler(_request: Request, exc: LLMError) -> JSONResponse:
    logger.error(f"LLM error: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=502)


@app.exception_handler(JSONParsingError)
async def jsonparsing_exception_handler(_request: Request, exc: JSONParsingError) -> JSONResponse:
    logger.error(f"JSON parsing error: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(_request: Request, exc: PipelineError) -> JSONResponse:
    logger.error(f"Pipeline error: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    logger.info("Health check endpoint called")
    return {"status": "ok"}


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)
app.include_router(router)
