from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from core.config import logger

router = APIRouter(tags=["jobs"])


@router.websocket("/ws/jobs/{job_id}")
async def ws_job_events(ws: WebSocket, job_id: str):
    """Push a snapshot of the job, then its progress events until it completes or fails."""
    await ws.accept()
    registry = ws.app.state.registry
    sub = registry.subscribe(job_id)
    if sub is None:
        await ws.send_json({"type": "error", "data": {"jobId": job_id, "error": "Job not found"}})
        await ws.close()
        return

    logger.info(f"[ws] client subscribed to JOB {job_id}")
    try:
        while True:
            event = await run_in_threadpool(sub.get, 1.0)
            if event is None:
                continue
            await ws.send_json(event.model_dump(mode="json"))
            if event.is_terminal:
                break
        await ws.close()
    except WebSocketDisconnect:
        logger.info(f"[ws] client left JOB {job_id}")
    finally:
        registry.unsubscribe(sub)
