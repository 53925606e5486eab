"""FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leasecheck.api import lease_check
from leasecheck.config import AI_EXTRACTION_ENABLED
from leasecheck.pipeline.llm_client import check_ollama_status

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Lease Check",
    description="Mineral ownership and leasehold status from county runsheets",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(lease_check.router, prefix="/api/lease-check", tags=["Lease Check"])


@app.get("/api/health")
async def health():
    result = {"status": "operational", "service": "Lease Check", "ai_extraction": AI_EXTRACTION_ENABLED}
    if AI_EXTRACTION_ENABLED:
        result["ollama"] = await check_ollama_status()
    return result
