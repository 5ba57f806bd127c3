"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import csr_drafts

router = APIRouter()

# CSR drafting sessions: uploads, generation runs, document snapshots
router.include_router(csr_drafts.router, tags=["csr_drafts"])
