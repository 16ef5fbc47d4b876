import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional
from fastapi import APIRouter, BackgroundTasks, HTTPException, Query

from drought_pipeline.jobs.daily_pipeline import STAGES, run_daily_pipeline
from drought_pipeline.jobs.orchestrator import RunSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pipeline", tags=["Pipeline"])

# --- Global State (Simple In-Memory Lock) ---
pipeline_state = {
    "is_running": False,
    "stage": None,
    "last_run_status": "unknown",
    "last_run_time": None,
    "runs": [],
}

# Swappable for tests
pipeline_runner: Callable[..., List[RunSummary]] = run_daily_pipeline


def pipeline_wrapper(stage: str):
    """
    Wraps the synchronous pipeline to manage state flags.
    """
    try:
        logger.info(f"🚀 API triggered pipeline execution ({stage}).")
        pipeline_state["is_running"] = True
        pipeline_state["stage"] = stage
        pipeline_state["last_run_status"] = "running"

        summaries = pipeline_runner(stage)

        pipeline_state["runs"] = [s.to_dict() for s in summaries]
        aborted = any(s.aborted for s in summaries)
        pipeline_state["last_run_status"] = "partial" if aborted else "success"
    except Exception as e:
        logger.exception(f"💥 Pipeline failed: {e}")
        pipeline_state["last_run_status"] = "failed"
    finally:
        pipeline_state["is_running"] = False
        pipeline_state["last_run_time"] = datetime.now(timezone.utc).isoformat()
        logger.info("🏁 Pipeline execution finished.")


@router.get("/status")
def get_status():
    """
    Current run flag plus the summaries of the last finished run.
    """
    return pipeline_state


@router.post("/trigger")
def trigger_pipeline(
    background_tasks: BackgroundTasks,
    stage: Optional[str] = Query("all", description="collect | reconstruct | all")
):
    """
    Starts the pipeline in the background.
    """
    if stage not in STAGES:
        raise HTTPException(status_code=400, detail=f"Unknown stage '{stage}'. Expected one of {list(STAGES)}")
    if pipeline_state["is_running"]:
        raise HTTPException(status_code=409, detail="Pipeline is already running.")

    background_tasks.add_task(pipeline_wrapper, stage)
    return {"message": "Pipeline triggered successfully", "status": "started", "stage": stage}
