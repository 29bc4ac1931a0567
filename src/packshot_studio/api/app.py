from __future__ import annotations

import io
import logging
import zipfile

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import BaseModel

from packshot_studio.config import settings
from packshot_studio.naming import dedupe_names, process_files_for_preview, process_files_for_rename, summarize_previews
from packshot_studio.pipeline import PackshotItem, PackshotOptions, ProcessedImage, process_all
from packshot_studio.providers.base import AiEanResult
from packshot_studio.providers.gemini_provider import GeminiEanExtractor

logger = logging.getLogger(__name__)

app = FastAPI(title="packshot_studio")


class RenamePreviewRequest(BaseModel):
    filenames: list[str]
    remove_leading_zeros: bool = False
    use_ai_mode: bool = False


def _get_ean_extractor() -> GeminiEanExtractor | None:
    if not settings.gemini_api_key:
        return None
    return GeminiEanExtractor(api_key=settings.gemini_api_key)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _packshot_options(remove_background: str | None, frame_size: int) -> PackshotOptions:
    try:
        return PackshotOptions.from_settings(
            remove_background=_parse_bool(remove_background, default=True),
            frame_size=frame_size,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


async def _read_uploads(files: list[UploadFile]) -> list[tuple[str, bytes]]:
    if not files:
        raise HTTPException(status_code=400, detail="upload at least one file")
    out: list[tuple[str, bytes]] = []
    for f in files:
        out.append((f.filename or "upload.bin", await f.read()))
    return out


async def _analyze_with_ai(filenames: list[str], use_ai_mode: bool) -> list[AiEanResult] | None:
    if not use_ai_mode:
        return None
    extractor = _get_ean_extractor()
    if extractor is None:
        return None
    return await run_in_threadpool(extractor.analyze_filenames, filenames)


def _zip_response(members: list[tuple[str, bytes]], archive_name: str) -> Response:
    names = dedupe_names([name for name, _ in members])
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, (_, data) in zip(names, members):
            zf.writestr(name, data)
    headers = {"Content-Disposition": f'attachment; filename="{archive_name}"'}
    return Response(content=buf.getvalue(), media_type="application/zip", headers=headers)


async def _run_packshots(files: list[UploadFile], remove_background: str | None, frame_size: int) -> list[ProcessedImage]:
    options = _packshot_options(remove_background, frame_size)
    uploads = await _read_uploads(files)
    items = [PackshotItem(buffer=data, filename=name) for name, data in uploads]
    logger.info(
        "packshot process: %d files, remove_background=%s, frame_size=%d",
        len(items),
        options.remove_background,
        options.frame_size,
    )
    return await run_in_threadpool(process_all, items, options)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/packshot/process")
async def process_packshots(
    files: list[UploadFile] = File(...),
    remove_background: str = Form("true"),
    frame_size: int = Form(800),
):
    results = await _run_packshots(files, remove_background, frame_size)
    payload = []
    for r in results:
        entry: dict[str, object] = {"filename": r.filename, "size": len(r.buffer)}
        if r.error:
            entry["error"] = r.error
        if r.warning:
            entry["warning"] = r.warning
        payload.append(entry)
    success = sum(1 for r in results if r.ok)
    return {"results": payload, "success": success, "failed": len(results) - success}


@app.post("/packshot/download")
async def download_packshots(
    files: list[UploadFile] = File(...),
    remove_background: str = Form("true"),
    frame_size: int = Form(800),
):
    results = await _run_packshots(files, remove_background, frame_size)
    members = [(r.filename, r.buffer) for r in results if r.ok]
    if not members:
        raise HTTPException(status_code=400, detail="no packshots could be generated")
    return _zip_response(members, "packshots.zip")


@app.post("/rename/preview")
async def preview_rename(req: RenamePreviewRequest):
    if not req.filenames:
        raise HTTPException(status_code=400, detail="no filenames to preview")
    ai_results = await _analyze_with_ai(req.filenames, req.use_ai_mode)
    previews = process_files_for_preview(
        req.filenames,
        remove_zeros=req.remove_leading_zeros,
        ai_results=ai_results,
    )
    summary = summarize_previews(previews)
    return {
        **summary,
        "ai_mode_enabled": ai_results is not None,
        "files": [p.to_json() for p in previews],
    }


@app.post("/rename/process")
async def process_rename(
    files: list[UploadFile] = File(...),
    remove_leading_zeros: str = Form("false"),
    use_ai_mode: str = Form("false"),
):
    uploads = await _read_uploads(files)
    ai_results = await _analyze_with_ai([name for name, _ in uploads], _parse_bool(use_ai_mode))
    renamed = process_files_for_rename(
        uploads,
        remove_zeros=_parse_bool(remove_leading_zeros),
        ai_results=ai_results,
    )
    logger.info(
        "rename process: %d files, %d renamed, %d kept original names",
        len(renamed),
        sum(1 for r in renamed if r.success),
        sum(1 for r in renamed if not r.success),
    )
    return _zip_response([(r.new_name, r.buffer) for r in renamed], "renamed.zip")
