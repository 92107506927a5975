import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, Depends
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from drive.core.config import get_settings
from drive.core.maintenance import maintenance_job
from drive.core.storage import get_storage
from drive.models.database import Base, engine, get_db
from drive.models import resource, session, user  # noqa: F401  register tables
from drive.routers import auth, files
from drive.routers.auth import get_current_session

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

for _logger_name in ("apscheduler.executors.default", "apscheduler.scheduler"):
    logging.getLogger(_logger_name).setLevel(logging.WARNING)

Base.metadata.create_all(bind=engine)

scheduler = AsyncIOScheduler()

BASE_DIR = Path(__file__).resolve().parent


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("Starting application...")
    if settings.session_secret == "change-me":
        logger.warning("SESSION_SECRET is not set, using the development default")

    if settings.maintenance_interval_minutes > 0:
        scheduler.add_job(
            maintenance_job,
            "interval",
            minutes=settings.maintenance_interval_minutes,
            args=[get_storage(), settings.orphan_grace_seconds],
            id="maintenance",
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Scheduler started, maintenance every %d minutes", settings.maintenance_interval_minutes)

    try:
        yield
    finally:
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler stopped.")
        logger.info("Application shutdown complete.")


app = FastAPI(lifespan=lifespan)

templates = Jinja2Templates(directory=BASE_DIR / "templates")

app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")

# include our routers
app.include_router(auth.router)
app.include_router(files.router)


@app.get("/", response_class=HTMLResponse)
def home(request: Request, db: Session = Depends(get_db)):
    if get_current_session(request, db):
        return RedirectResponse(url="/dashboard", status_code=303)
    return RedirectResponse(url="/login", status_code=303)


@app.get("/about", response_class=HTMLResponse)
def about(request: Request):
    return templates.TemplateResponse(request, "about.html", {})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
