"""
dartscore API - dart-tip detection and X01 scoring service

Camera clients post frames to a per-camera detector session; confident darts
are scored straight into the live match. Manual entry, corrections and
visits relayed from other clients go through the same match queue.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dartscore.api.routes import API_VERSION, match_holder, router, settings
from dartscore.core.sessions import session_manager

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Configuration
API_TITLE = "dartscore API"
API_DESCRIPTION = """
Dart-tip detection and X01 visit/leg scoring.

## Endpoints

### Match
- `POST /v1/match` - Start a match
- `GET /v1/match` - Match snapshot
- `POST /v1/match/darts` - Apply a dart (value+ring, "T20", sector+mult, bull)
- `POST /v1/match/replace-last`, `/undo`, `/undo-visit`, `/commit` - Corrections
- `POST /v1/match/visits` - Apply a visit committed elsewhere (duplicate-guarded)
- `POST /v1/match/next-leg`, `/end`

### Detection
- `POST /v1/sessions/{camera_id}` - Start a detector session (config, ROI, homography)
- `POST /v1/sessions/{camera_id}/frames` - Detect (and auto-score) a frame
- `DELETE /v1/sessions/{camera_id}` - Stop a session

### Misc
- `GET /v1/checkout/{score}` - Checkout suggestions
- `GET /health` - Service health check
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"dartscore API starting ({settings.starting_score}, "
                f"double-in={settings.double_in}, double-out={settings.double_out})")
    yield
    match_holder.stop()
    session_manager.clear()
    logger.info("dartscore API shutting down")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS - allow all for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    """API info and links."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


def run():
    import uvicorn
    uvicorn.run("dartscore.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
