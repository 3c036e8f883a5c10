"""VIGIL application entrypoint.

The detector is built once, here, at import time and shared by every
request. Handlers are plain functions so FastAPI runs them on its
worker thread pool; the detector is safe to call from all of them at
once.
"""

import hmac
import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request

from vigil.config import settings
from vigil.engine.detector import AnomalyDetector, initialize
from vigil.models.events import Event
from vigil.models.profile import AnomalyScore, ClientProfile, HealthStatus
from vigil.utils.logging import configure_logging

configure_logging(settings.log_level)
logger = logging.getLogger("vigil")

app = FastAPI(
    title="VIGIL",
    description="Behavioral anomaly scoring for multi-tenant authentication",
    version=settings.version,
)
app.state.detector = initialize(settings.detector_config())


@app.on_event("startup")
async def startup():
    logger.info("VIGIL v%s starting - behavioral anomaly scoring", settings.version)
    logger.info("Log level: %s", settings.log_level)
    logger.info("API port: %s", settings.api_port)
    if not settings.api_key:
        logger.warning("VIGIL_API_KEY is not set; /api/v1 routes are unauthenticated")


def get_detector(request: Request) -> AnomalyDetector:
    return request.app.state.detector


def require_api_key(x_api_key: str = Header(default="")) -> None:
    if not settings.api_key:
        return
    if not hmac.compare_digest(x_api_key.encode(), settings.api_key.encode()):
        raise HTTPException(status_code=401, detail="Invalid API key")


@app.get("/health", response_model=HealthStatus)
def health(detector: AnomalyDetector = Depends(get_detector)):
    return detector.health()


@app.post(
    "/api/v1/detect",
    response_model=AnomalyScore,
    dependencies=[Depends(require_api_key)],
)
def detect(event: Event, detector: AnomalyDetector = Depends(get_detector)):
    return detector.analyze(event)


@app.get(
    "/api/v1/profiles",
    response_model=list[ClientProfile],
    dependencies=[Depends(require_api_key)],
)
def list_profiles(detector: AnomalyDetector = Depends(get_detector)):
    return detector.get_all_profiles()


@app.get(
    "/api/v1/profiles/{tenant_id}/{client_id}",
    response_model=ClientProfile,
    dependencies=[Depends(require_api_key)],
)
def get_profile(
    tenant_id: str,
    client_id: str,
    detector: AnomalyDetector = Depends(get_detector),
):
    profile = detector.get_profile(tenant_id, client_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.post(
    "/api/v1/profiles/{tenant_id}/{client_id}/compromise",
    response_model=ClientProfile,
    dependencies=[Depends(require_api_key)],
)
def mark_compromised(
    tenant_id: str,
    client_id: str,
    detector: AnomalyDetector = Depends(get_detector),
):
    profile = detector.mark_compromised(tenant_id, client_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.delete(
    "/api/v1/profiles/{tenant_id}/{client_id}",
    dependencies=[Depends(require_api_key)],
)
def reset_profile(
    tenant_id: str,
    client_id: str,
    detector: AnomalyDetector = Depends(get_detector),
):
    if not detector.reset_profile(tenant_id, client_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"status": "deleted"}


def run():
    """Console entrypoint: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)
