from __future__ import annotations

from fastapi import FastAPI

from .api.charts import router as charts_router
from .core.config import settings
from .core.log import configure_logging

configure_logging(settings.log_level)

app = FastAPI(title="Finova Chart Analysis API")
app.include_router(charts_router)


@app.get("/")
def root():
    return {"status": "Finova chart analysis API running"}


@app.get("/health")
def health():
    return {"ok": True}
