import os
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.config import logger
from core.exceptions import InvalidSourceError
from core.jobs import JobRegistry
from models.batch import BatchSettings
from models.job import JobStatus
from utils import processor
from utils.archive import archive_name, iter_no_compression_zip

router = APIRouter(prefix="/api", tags=["processing"])


class FolderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selected_path: str = Field(..., alias="selectedPath")


class EncryptRequest(FolderRequest):
    name_to_inject: str = Field(..., min_length=1, alias="nameToInject")


class BatchCopyRequest(FolderRequest):
    settings: BatchSettings


class AddTextRequest(FolderRequest):
    text: str = Field(..., min_length=1)
    photo_number: int = Field(..., alias="photoNumber")


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=400)


def _parse(model, payload: dict):
    try:
        return model.model_validate(payload or {}), None
    except ValidationError as ex:
        first = ex.errors()[0] if ex.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        return None, _bad_request(f"Invalid request: {field}: {first.get('msg', 'invalid value')}")


def _started(registry: JobRegistry, operation: str, path: str, work, label: str) -> JSONResponse:
    holder = registry.lock_holder(operation, path)
    job_id = registry.start(operation, path, work)
    if holder and holder == job_id:
        message = f"{label} already in progress"
    else:
        message = f"{label} started"
    return JSONResponse({"success": True, "jobId": job_id, "message": message})


@router.post("/encrypt")
async def encrypt(payload: dict = Body(...), registry: JobRegistry = Depends(get_registry)):
    req, err = _parse(EncryptRequest, payload)
    if err:
        return err
    try:
        path = processor.validate_source_folder(req.selected_path)
    except InvalidSourceError as ex:
        return _bad_request(str(ex))

    def work(progress):
        count = processor.encrypt_files(path, req.name_to_inject, progress)
        return {"path": path, "filesWatermarked": count}

    return _started(registry, "encrypt", path, work, "Encryption")


@router.post("/decrypt")
async def decrypt(payload: dict = Body(...), registry: JobRegistry = Depends(get_registry)):
    req, err = _parse(FolderRequest, payload)
    if err:
        return err
    try:
        path = processor.validate_source_folder(req.selected_path)
    except InvalidSourceError as ex:
        return _bad_request(str(ex))

    def work(progress):
        return {"path": path, "watermarks": processor.decrypt_files(path, progress)}

    return _started(registry, "decrypt", path, work, "Decryption")


@router.post("/batch-copy")
async def batch_copy(payload: dict = Body(...), registry: JobRegistry = Depends(get_registry)):
    req, err = _parse(BatchCopyRequest, payload)
    if err:
        return err
    try:
        path = processor.validate_source_folder(req.selected_path)
    except InvalidSourceError as ex:
        return _bad_request(str(ex))

    def work(progress):
        result = processor.perform_batch_copy(path, req.settings, progress)
        result["downloadToken"] = registry.issue_download_token(result["path"])
        logger.info(f"[batch] Result available. Token: {result['downloadToken']}")
        return result

    return _started(registry, "batch", path, work, "Batch")


@router.post("/add-text")
async def add_text(payload: dict = Body(...), registry: JobRegistry = Depends(get_registry)):
    req, err = _parse(AddTextRequest, payload)
    if err:
        return err
    try:
        path = processor.validate_source_folder(req.selected_path)
    except InvalidSourceError as ex:
        return _bad_request(str(ex))

    def work(progress):
        marked = processor.add_text_to_photo(path, req.text, req.photo_number)
        progress(1.0)
        return {"path": path, "photo": marked}

    return _started(registry, "add-text", path, work, "Add text")


@router.post("/remove-watermarks")
async def remove_watermarks(payload: dict = Body(...), registry: JobRegistry = Depends(get_registry)):
    req, err = _parse(FolderRequest, payload)
    if err:
        return err
    try:
        path = processor.validate_source_folder(req.selected_path)
    except InvalidSourceError as ex:
        return _bad_request(str(ex))

    def work(progress):
        return {"path": path, "removed": processor.remove_watermarks(path, progress)}

    return _started(registry, "remove-watermarks", path, work, "Watermark removal")


@router.get("/processing/{job_id}")
async def processing_status(job_id: str, registry: JobRegistry = Depends(get_registry)):
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    body = {"status": job.status.value, "progress": job.progress}
    if job.status is JobStatus.ERROR:
        body["error"] = job.error
    if job.status is JobStatus.COMPLETED and job.result is not None:
        body["result"] = job.result
    return body


@router.get("/download/{token}")
async def download(token: str, registry: JobRegistry = Depends(get_registry)):
    path: Optional[str] = registry.resolve_download_token(token)
    if not path:
        raise HTTPException(status_code=404, detail="Invalid or expired token")
    if not os.path.exists(path):
        registry.revoke_download_token(token)
        raise HTTPException(status_code=404, detail="File not found")

    # one-time token
    registry.revoke_download_token(token)

    if os.path.isdir(path):
        filename = archive_name(path)
        headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
        logger.info(f"[download] Streaming {filename}")
        return StreamingResponse(iter_no_compression_zip(path), media_type="application/zip", headers=headers)
    return FileResponse(path, filename=os.path.basename(path))

