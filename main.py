import sys
from datetime import datetime
from fastapi import FastAPI
from drought_pipeline.config.settings import settings
from drought_pipeline.config.mongo_client import mongo_client
from drought_pipeline.utils.logger import setup_logger
from drought_pipeline.jobs.daily_pipeline import STAGES, run_daily_pipeline
from drought_pipeline.api.pipeline import router as pipeline_router

# Component loggers (drought_pipeline.*) propagate into this one
logger = setup_logger("drought_pipeline", level=settings.log_level, log_dir=settings.log_dir)

# --- 1. API CONFIGURATION (Accessed by Uvicorn) ---
app = FastAPI(title="Drought Series Pipeline", version="1.0.0")

app.include_router(pipeline_router)

@app.get("/health")
def health_check():
    """Health check for the pipeline service"""
    return {"status": "active", "service": "drought-pipeline", "start_year": settings.start_year}

# --- 2. CLI JOB RUNNER (Accessed by Python command) ---
def main():
    """
    Main Entry Point for Background Jobs.
    Usage: python main.py <collect|reconstruct|all> [optional: YYYY-MM-DD]
           python main.py serve   (runs the control API)
    """
    if len(sys.argv) < 2:
        logger.error("No job specified. Usage: python main.py <collect|reconstruct|all|serve> [date]")
        sys.exit(1)

    job_name = sys.argv[1]
    if job_name == "serve":
        serve()
        return

    if job_name not in STAGES:
        logger.warning(f"Job {job_name} not recognized.")
        sys.exit(1)

    today = None
    if len(sys.argv) > 2:
        today = datetime.strptime(sys.argv[2], "%Y-%m-%d").date()

    logger.info(f"Starting Drought Pipeline. Job: {job_name} | Date: {today or datetime.now().date()}")

    try:
        summaries = run_daily_pipeline(job_name, today=today)
    except Exception:
        logger.exception("Critical Job Failure")
        sys.exit(1)
    finally:
        mongo_client.close()

    if summaries and all(s.aborted for s in summaries):
        logger.critical("🛑 Every run aborted.")
        sys.exit(1)

def serve(host: str = "0.0.0.0", port: int = 8300):
    import uvicorn
    logger.info(f"🌐 Serving control API on {host}:{port}")
    uvicorn.run(app, host=host, port=port)

if __name__ == "__main__":
    main()
