"""
contact_intake/routers/formdata.py — Contact form submission endpoint
POST /formdata: runs the intake pipeline and returns a minimal acknowledgment.
Rejections are raised as PipelineError and rendered by the handlers in main.py.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, status

from contact_intake.models import ClientSource
from contact_intake.services.pipeline import SubmissionPipeline

router = APIRouter()


def get_pipeline(request: Request) -> SubmissionPipeline:
    return request.app.state.pipeline


def client_source(request: Request) -> ClientSource:
    peer = request.client.host if request.client else None
    return ClientSource(headers=dict(request.headers), peer_address=peer)


# Sync handler: FastAPI runs it on the worker threadpool, so concurrent
# submissions exercise the limiter's per-key locking.
@router.post("", status_code=status.HTTP_201_CREATED)
def create_formdata(
    request: Request,
    payload: Any = Body(None),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    ack = pipeline.process(client_source(request), payload)
    return {
        "success": True,
        "message": "Form submitted successfully",
        "id": ack.id,
    }
