"""
Job runner callback.

The runner POSTs {name, data, attempt} signed with JOB_SIGNING_KEY
(header X-Job-Signature: sha256=<hex>). A non-2xx response makes the
runner retry the step.
"""

import json
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from ...lib.jobs import JobHandlers, verify_signature
from ...models import JobRequest


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def run_job(request: Request):
    """
    Run one job step.

    Returns:
    - name: The job that ran
    - result: Whatever the handler returned
    """
    raw = await request.body()
    if not verify_signature(raw, request.headers.get("x-job-signature")):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        job = JobRequest.model_validate(json.loads(raw))
    except (ValueError, PydanticValidationError):
        raise HTTPException(status_code=400, detail="Invalid job payload")

    logger.info("Running job %s (attempt %d)", job.name, job.attempt + 1)

    # Transcription polls for minutes; keep it off the event loop
    handlers = JobHandlers()
    result = await run_in_threadpool(handlers.handle, job.name, job.data, job.attempt)
    return {"name": job.name, "result": result}
