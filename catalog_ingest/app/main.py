import datetime
import os
import uuid
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from ..config import Settings
from ..monitoring.health import HealthAnalyzer, HealthMonitor, HealthThresholds
from ..monitoring.history import HealthHistory
from ..monitoring.report import render_markdown
from ..pipeline import CatalogPipeline
from ..sync.storage import get_document_store
from ..utils.error_handler import CatalogIngestError, describe_error
from ..utils.logger import setup_logger

api_logger = setup_logger("catalog_ingest_api")


class RunRequest(BaseModel):
    sources: Optional[List[str]] = None
    sync: bool = False


class ProcessingResponse(BaseModel):
    task_id: str
    status: str


class ProcessingStatus(BaseModel):
    status: str
    progress: float = 0
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    history = HealthHistory(settings.HEALTH_DIR / "history")
    monitor = HealthMonitor(HealthAnalyzer(HealthThresholds.from_settings(settings)), history)

    app = FastAPI(title="Catalog Ingest API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:8000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_router = APIRouter(prefix="/api")

    # Store background tasks status
    processing_tasks: Dict[str, Dict] = {}
    app.state.processing_tasks = processing_tasks

    def latest_report(source_id: str):
        report = monitor.latest_report(source_id)
        if report is None:
            raise HTTPException(status_code=404, detail=f"No health history for '{source_id}'")
        return report

    @api_router.get("/health")
    async def health_check():
        """Health check endpoint for the application"""
        status = {
            "status": "healthy",
            "timestamp": datetime.datetime.now().isoformat(),
            "environment": settings.NODE_ENV,
        }
        try:
            store = get_document_store(settings)
            status["storage"] = store.__class__.__name__
        except CatalogIngestError as e:
            status.update({
                "status": "unhealthy",
                "storage_error": str(e),
            })
        return status

    @api_router.get("/health-reports")
    async def list_sources():
        return {"sources": history.source_ids()}

    @api_router.get("/health-reports/{source_id}")
    async def get_health_report(source_id: str):
        """Latest snapshot of a source with its trends and alerts"""
        return latest_report(source_id).model_dump(by_alias=True, mode="json")

    @api_router.get("/health-reports/{source_id}/history")
    async def get_health_history(source_id: str, limit: Optional[int] = None):
        snapshots = history.read(source_id, limit=limit)
        if not snapshots:
            raise HTTPException(status_code=404, detail=f"No health history for '{source_id}'")
        return [s.model_dump(by_alias=True, mode="json") for s in snapshots]

    @api_router.get("/health-reports/{source_id}/summary", response_class=PlainTextResponse)
    async def get_health_summary(source_id: str):
        return render_markdown(latest_report(source_id))

    @api_router.post("/runs", response_model=ProcessingResponse)
    async def start_run(request: RunRequest, background_tasks: BackgroundTasks):
        """
        Run an ingest batch asynchronously
        """
        store = None
        if request.sync:
            try:
                store = get_document_store(settings)
            except CatalogIngestError as e:
                api_logger.error(f"Cannot start synced run: {str(e)}")
                raise HTTPException(status_code=503, detail=describe_error(e))

        task_id = str(uuid.uuid4())
        processing_tasks[task_id] = {"status": "processing", "progress": 0}

        pipeline = CatalogPipeline(settings, store=store, monitor=monitor)
        background_tasks.add_task(pipeline.process_batch, task_id, request.sources, processing_tasks)

        api_logger.info(f"Queued ingest task {task_id}")
        return ProcessingResponse(task_id=task_id, status="processing")

    @api_router.get("/runs/{task_id}", response_model=ProcessingStatus)
    async def get_status(task_id: str):
        """
        Get the status of a processing task
        """
        if task_id not in processing_tasks:
            return ProcessingStatus(status="not_found")

        return ProcessingStatus(
            status=processing_tasks[task_id]["status"],
            progress=processing_tasks[task_id].get("progress", 0),
            result=processing_tasks[task_id].get("result"),
            error=processing_tasks[task_id].get("error"),
        )

    # Include the API router
    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("API_PORT", 8000))
    uvicorn.run("catalog_ingest.app.main:app", host="0.0.0.0", port=port, reload=not Settings().is_production)
