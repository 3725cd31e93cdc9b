from __future__ import annotations

import logging
from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from capitalplan.engine_config import EngineSettings
from capitalplan.project_analytics.api_project_analytics import router as project_analytics_router

logger = logging.getLogger(__name__)


app = FastAPI(title="CapitalPlan – Project Analytics")
app.include_router(project_analytics_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info(f"Project analytics API loaded (config: {EngineSettings.get_config().to_dict()})")


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
