import os
import zipfile
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse, JSONResponse, Response

from core.config import logger
from core.jobs import JobRegistry
from models.job import Job
from routers.processing import get_registry
from utils.files import (
    file_extension,
    format_file_size,
    is_image_file,
    is_text_file,
    is_video_file,
    secure_join,
    walk_files,
)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _job_or_404(registry: JobRegistry, job_id: str) -> Job:
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def _result_path(job: Job) -> str:
    path = (job.result or {}).get("path")
    return path if isinstance(path, str) else ""


def _preview_url(job_id: str, **query: str) -> str:
    return f"/api/admin/jobs/{job_id}/preview?{urlencode(query)}"


def _zip_images(job_id: str, base: str, zip_path: str) -> List[Dict[str, str]]:
    rel_zip = os.path.relpath(zip_path, base)
    try:
        with zipfile.ZipFile(zip_path) as zf:
            names = zf.namelist()
    except (OSError, zipfile.BadZipFile) as ex:
        logger.warning(f"[admin] could not read {zip_path}: {ex}")
        return []
    return [
        {"name": os.path.basename(name), "previewURL": _preview_url(job_id, zip=rel_zip, entry=name)}
        for name in names
        if not name.endswith("/") and is_image_file(name)
    ]


def list_result_images(job_id: str, base: str) -> List[Dict[str, Any]]:
    """Images under each order folder of a batch result, grouped per archive, or per folder when it has none."""
    if not base or not os.path.isdir(base):
        return []
    archives = []
    for order in sorted(e.name for e in os.scandir(base) if e.is_dir()):
        order_path = os.path.join(base, order)
        zips = sorted(e.path for e in os.scandir(order_path) if e.is_file() and file_extension(e.name) == "zip")
        for zip_path in zips:
            images = _zip_images(job_id, base, zip_path)
            if images:
                archives.append({
                    "name": f"{order}/{os.path.basename(zip_path)}",
                    "path": os.path.relpath(zip_path, base),
                    "type": "zip",
                    "images": images,
                })
        if zips:
            continue

        images = [
            {"name": os.path.basename(p), "previewURL": _preview_url(job_id, path=os.path.relpath(p, base))}
            for p in walk_files(order_path)
            if is_image_file(p)
        ]
        if images:
            archives.append({"name": order, "path": order, "type": "folder", "images": images})
    return archives


def result_stats(base: str) -> Dict[str, Any]:
    images = videos = texts = zips = total = 0
    for path in walk_files(base):
        if is_image_file(path):
            images += 1
        elif is_video_file(path):
            videos += 1
        elif is_text_file(path):
            texts += 1
        elif file_extension(path) == "zip":
            zips += 1
        total += os.path.getsize(path)
    return {
        "images": images,
        "videos": videos,
        "texts": texts,
        "zips": zips,
        "totalBytes": total,
        "totalSize": format_file_size(total),
    }


def _image_media_type(name: str) -> str:
    return "image/png" if file_extension(name) == "png" else "image/jpeg"


@router.get("/jobs")
async def admin_jobs(registry: JobRegistry = Depends(get_registry)):
    jobs = registry.list_jobs()
    return {"jobs": [j.model_dump(mode="json", by_alias=True) for j in jobs]}


@router.get("/jobs/{job_id}")
async def admin_job_details(job_id: str, registry: JobRegistry = Depends(get_registry)):
    return _job_or_404(registry, job_id).model_dump(mode="json", by_alias=True)


@router.post("/jobs/{job_id}/approve")
async def admin_approve_job(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """Issue a fresh one-time download token for the job's result folder."""
    job = _job_or_404(registry, job_id)
    path = _result_path(job)
    if not path:
        return JSONResponse({"success": False, "error": "Job has no result path to approve"}, status_code=400)
    token = registry.issue_download_token(path)
    logger.info(f"[admin] JOB {job_id} approved, token issued for {path}")
    return {"success": True, "token": token}


@router.get("/jobs/{job_id}/images")
async def admin_job_images(job_id: str, registry: JobRegistry = Depends(get_registry)):
    job = _job_or_404(registry, job_id)
    return {"archives": list_result_images(job_id, _result_path(job))}


@router.get("/jobs/{job_id}/preview")
async def admin_job_preview(
    job_id: str,
    path: Optional[str] = None,
    zip_name: Optional[str] = Query(None, alias="zip"),
    entry: Optional[str] = None,
    registry: JobRegistry = Depends(get_registry),
):
    """Serve one image of a result, either a loose file (?path=) or an archive member (?zip=&entry=)."""
    base = _result_path(_job_or_404(registry, job_id))
    if not base:
        return JSONResponse({"error": "No result path"}, status_code=400)

    if path:
        full = secure_join(base, path)
        if full is None:
            logger.warning(f"[admin] rejected preview path {path!r} for JOB {job_id}")
            return JSONResponse({"error": "Forbidden"}, status_code=403)
        if not os.path.isfile(full):
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(full)

    if zip_name and entry:
        zip_path = secure_join(base, zip_name)
        if zip_path is None:
            logger.warning(f"[admin] rejected preview archive {zip_name!r} for JOB {job_id}")
            return JSONResponse({"error": "Forbidden"}, status_code=403)
        if not os.path.isfile(zip_path):
            raise HTTPException(status_code=404, detail="Archive not found")
        try:
            with zipfile.ZipFile(zip_path) as zf:
                data = zf.read(entry)
        except KeyError:
            raise HTTPException(status_code=404, detail="Entry not found")
        except zipfile.BadZipFile as ex:
            logger.error(f"[admin] failed to open {zip_path}: {ex}")
            return JSONResponse({"error": "Failed to open zip"}, status_code=500)
        return Response(content=data, media_type=_image_media_type(entry))

    return JSONResponse({"error": "Invalid request"}, status_code=400)


@router.get("/jobs/{job_id}/stats")
async def admin_job_stats(job_id: str, registry: JobRegistry = Depends(get_registry)):
    job = _job_or_404(registry, job_id)
    base = _result_path(job)
    if not base or not os.path.isdir(base):
        return {"stats": {}}
    return {"stats": result_stats(base)}
