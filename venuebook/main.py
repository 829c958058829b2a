import logging

from fastapi import FastAPI

from venuebook.infrastructure.config import settings
from venuebook.infrastructure.database import Base, engine
from venuebook.infrastructure.models import models  # noqa: F401  (registers tables)
from venuebook.presentation.error_handlers import register_exception_handlers
from venuebook.presentation.routers import router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="venuebook")

register_exception_handlers(app)
Base.metadata.create_all(bind=engine)
app.include_router(router)
