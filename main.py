from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from models import OtpOutcome  # noqa: E402
from routers.otp import router as otp_router  # noqa: E402
from store import get_store  # noqa: E402
from utils.otp_store import OtpError  # noqa: E402


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

OTP_SWEEP_SECONDS = int(os.getenv("OTP_SWEEP_SECONDS", "60"))


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]


app = FastAPI(title="OTP Verification Service")


@app.middleware("http")
async def _catch_unexpected_errors(request: Request, call_next):
    # Registered before CORS so CORS wraps it and the 500 keeps its headers.
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal server error",
                "kind": OtpOutcome.INTERNAL_ERROR.value,
            },
        )


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(otp_router, prefix="/api")


@app.exception_handler(OtpError)
async def _otp_error_handler(request: Request, exc: OtpError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "kind": exc.kind.value},
    )


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    fields = ", ".join(str(err["loc"][-1]) for err in exc.errors() if err.get("loc"))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": f"Invalid request: {fields}" if fields else "Invalid request",
            "kind": OtpOutcome.INVALID_INPUT.value,
        },
    )


@app.on_event("startup")
def _start_scheduler():
    # Drop abandoned challenges so memory stays bounded.
    sched = BackgroundScheduler(timezone=os.getenv("TZ", "UTC"))
    sched.add_job(
        get_store().reclaim,
        "interval",
        seconds=OTP_SWEEP_SECONDS,
        id="reclaim_expired_otps",
        replace_existing=True,
    )
    sched.start()
    app.state._scheduler = sched
    logger.info("OTP sweep scheduled every %ss", OTP_SWEEP_SECONDS)


@app.on_event("shutdown")
def _stop_scheduler():
    sched = getattr(app.state, "_scheduler", None)
    if sched:
        sched.shutdown(wait=False)


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "9000")))
