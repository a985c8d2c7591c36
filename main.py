from datetime import datetime
import logging
import os
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Form, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import OTPSettings
from email_utils import Notifier, ResendEmailNotifier
from otp_service import OTPError, OTPService
from otp_utils import OTPStore, UpstashOTPStore


def configure_logging() -> None:
    """Configure logging before settings are read so config warnings are emitted"""
    load_dotenv()
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))


configure_logging()
logger = logging.getLogger(__name__)


# --- Response models ---
class RequestIssued(BaseModel):
    request_id: str


class Verified(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    error: str


# --- Dependencies ---
def get_otp_service(request: Request) -> OTPService:
    """Dependency to build the OTP service from the app's collaborators"""
    state = request.app.state
    return OTPService(state.store, state.notifier, state.settings)


def _respond(settings: OTPSettings, status_code: int, content: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={"Access-Control-Allow-Origin": settings.cors_origin},
    )


def _error(settings: OTPSettings, status_code: int, message: str) -> JSONResponse:
    return _respond(settings, status_code, ErrorResponse(error=message).model_dump())


def create_app(
    settings: Optional[OTPSettings] = None,
    store: Optional[OTPStore] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    if settings is None:
        settings = OTPSettings.from_env()

    app = FastAPI(
        title="OTP API",
        description="Issues and verifies short-lived one-time passcodes delivered by email",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.store = store if store is not None else UpstashOTPStore(settings.store)
    app.state.notifier = notifier if notifier is not None else ResendEmailNotifier(settings.email)

    @app.post("/api/otp")
    def otp(
        action: Optional[str] = Form(None),
        purpose: Optional[str] = Form(None),
        request_id: Optional[str] = Form(None),
        code: Optional[str] = Form(None),
        service: OTPService = Depends(get_otp_service),
    ):
        """Form-encoded action=request (purpose) or action=verify (request_id, code)"""
        try:
            if action == "request":
                issued = service.request_otp(purpose)
                return _respond(settings, 200, RequestIssued(request_id=issued).model_dump())

            if action == "verify":
                service.verify_otp(request_id, code)
                return _respond(settings, 200, Verified().model_dump())

            return _error(settings, 400, "bad action")

        except OTPError as e:
            return _error(settings, e.status_code, e.message)
        except Exception as e:
            logger.exception(f"Error handling OTP action {action!r}: {e}")
            return _error(settings, 500, "server error")

    @app.get("/health")
    def health_check(request: Request):
        """Reports whether the store answers and the email sender is configured"""
        state = request.app.state
        store_ok = state.store.ping()
        email_ok = state.notifier.is_configured
        return _respond(
            settings,
            200,
            {
                "status": "healthy" if store_ok and email_ok else "degraded",
                "store": store_ok,
                "email": email_ok,
                "timestamp": datetime.now().isoformat(),
            },
        )

    # --- Exception Handlers ---
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc):
        if exc.status_code == 405:
            message = "method not allowed"
        elif exc.status_code == 404:
            message = "not found"
        else:
            message = "server error" if exc.status_code >= 500 else "bad request"
        return _error(settings, exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        return _error(settings, 400, "bad request")

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {exc}")
        return _error(settings, 500, "server error")

    @app.on_event("startup")
    async def startup_event():
        logger.info("🚀 OTP API starting up...")
        if not settings.store.is_configured and isinstance(app.state.store, UpstashOTPStore):
            logger.warning("⚠️ UPSTASH_REDIS_REST_URL/TOKEN not set, requests will fail")
        if not app.state.notifier.is_configured:
            logger.warning("⚠️ RESEND_API_KEY/OWNER_EMAIL not set, requests will fail")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
