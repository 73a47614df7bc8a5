"""FastAPI application - serves the tempo analysis API."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bpmsense.api.schemas import HealthResponse
from bpmsense.api.upload import router as upload_router
from bpmsense.api.websocket import router as ws_router

app = FastAPI(title="bpmsense", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(upload_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return {"status": "ok"}


def run(reload: bool = False):
    import uvicorn
    from bpmsense.config import settings
    uvicorn.run(
        "bpmsense.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )
