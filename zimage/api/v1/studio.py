"""Studio API: one server-side job controller with polling and history.

  GET    /studio                               current state snapshot
  POST   /studio/generate                      submit and start polling
  POST   /studio/cancel                        stop tracking the active job
  POST   /studio/reset                         back to IDLE, history kept
  GET    /studio/image                         download the current image
  GET    /studio/history                       newest-first history
  DELETE /studio/history                       clear history
  GET    /studio/history/{entry_id}            one entry, with its image
  POST   /studio/history/{entry_id}/recall     reopen an entry
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from zimage.api.v1.generate import GenerateBody
from zimage.io.image_data import decode_image
from zimage.jobs.controller import JobController
from zimage.jobs.models import JobStatus

router = APIRouter(prefix="/studio")


def get_controller(request: Request) -> JobController:
    return request.app.state.controller


# ---------------------------------------------------------------------------
# Current job
# ---------------------------------------------------------------------------

@router.get("")
async def get_state(controller: JobController = Depends(get_controller)):
    """Observable controller state, including the image once completed."""
    return controller.snapshot()


@router.post("/generate")
async def generate(body: GenerateBody, controller: JobController = Depends(get_controller)):
    """Submit a job. Polling continues in the background after this returns."""
    job = await controller.submit(body.to_request())
    return {
        "ok": job.status != JobStatus.FAILED,
        **controller.snapshot(include_output=False),
    }


@router.post("/cancel")
async def cancel(controller: JobController = Depends(get_controller)):
    if not controller.cancel():
        raise HTTPException(status_code=409, detail="No active generation to cancel")
    return controller.snapshot(include_output=False)


@router.post("/reset")
async def reset(controller: JobController = Depends(get_controller)):
    controller.reset()
    return controller.snapshot(include_output=False)


@router.get("/image")
async def download_image(controller: JobController = Depends(get_controller)):
    """Stream the current job's image as a file download."""
    job = controller.job
    if job is None or job.status != JobStatus.COMPLETED or not job.output:
        raise HTTPException(status_code=404, detail="No image available")

    raw, fmt = decode_image(job.output)
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return Response(
        content=raw,
        media_type=f"image/{fmt}",
        headers={"Content-Disposition": f'attachment; filename="z-image-{stamp}.{fmt}"'},
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@router.get("/history")
async def list_history(controller: JobController = Depends(get_controller)):
    entries = controller.history_entries()
    return {"entries": entries, "count": len(entries)}


@router.delete("/history")
async def clear_history(controller: JobController = Depends(get_controller)):
    controller.clear_history()
    return {"entries": [], "count": 0}


@router.get("/history/{entry_id}")
async def get_history_entry(entry_id: str, controller: JobController = Depends(get_controller)):
    job = controller.history.get(entry_id)
    if job is None:
        raise HTTPException(status_code=404, detail="History entry not found")
    return job.summary(include_output=True)


@router.post("/history/{entry_id}/recall")
async def recall_history_entry(entry_id: str, controller: JobController = Depends(get_controller)):
    """Reopen a past entry; returns its parameters for re-use."""
    job = controller.recall(entry_id)
    return {
        "entry": job.summary(),
        **controller.snapshot(include_output=False),
    }
