import logging
import os
import subprocess
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dojo_brackets.database import init_db
from dojo_brackets.routes import brackets, categories, matches, standings, tournaments
from dojo_brackets.services.errors import BracketError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("dojo_brackets")

app = FastAPI(title="Dojo Brackets API")


# Get build info
def get_build_info():
    """Get git commit hash or build timestamp"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass

    # Fallback to build timestamp
    return datetime.now().strftime("%Y%m%d-%H%M%S")


BUILD_HASH = get_build_info()

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BracketError)
def bracket_error_handler(request: Request, exc: BracketError):
    """Domain errors -> JSON with kind, entity id and retry hint."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s %s)", request.method, request.url.path, exc.message, exc.kind, exc.entity_id)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(categories.router, prefix="/api", tags=["categories"])
app.include_router(brackets.router, prefix="/api", tags=["brackets"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(standings.router, prefix="/api", tags=["standings"])


@app.on_event("startup")
def on_startup():
    init_db()

    routes = [
        (", ".join(sorted(getattr(r, "methods", None) or [])) or "N/A", r.path)
        for r in app.routes
        if getattr(r, "path", None)
    ]
    for methods, path in routes:
        logger.debug("%-20s %s", methods, path)
    logger.info("Registered %d routes (build %s)", len(routes), BUILD_HASH)


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {"app_name": "Dojo Brackets API", "build_hash": BUILD_HASH, "status": "healthy"}


def run():
    """Serve the API with uvicorn; HOST, PORT and RELOAD come from the environment."""
    import uvicorn

    uvicorn.run(
        "dojo_brackets.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes"),
    )


if __name__ == "__main__":
    run()
