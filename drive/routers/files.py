import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Request, Depends, Form, UploadFile, File as FastAPIFile, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from drive.core.storage import BlobNotFound, BlobStorage, BlobStorageError, get_storage
from drive.models import crud
from drive.models.database import get_db
from drive.routers.auth import get_current_session

logger = logging.getLogger(__name__)

router = APIRouter()

BASE_DIR = Path(__file__).resolve().parent.parent
templates = Jinja2Templates(directory=BASE_DIR / "templates")

# error codes passed back to the dashboard in the query string
ERROR_MESSAGES = {
    "NoFileUploaded": "Please choose a file to upload.",
    "FolderNameRequired": "Folder name cannot be empty.",
    "UploadFailed": "The file could not be stored. Please try again.",
    "DatabaseError": "Something went wrong with your drive. Please try again.",
    "DeleteFailed": "The item could not be deleted. Please try again.",
}


# largest id a 64-bit INTEGER column can hold
MAX_RESOURCE_ID = 2**63 - 1


def _dashboard_error(code: str) -> RedirectResponse:
    return RedirectResponse(url=f"/dashboard?error={code}", status_code=303)


# --- show user's root folder (drive/dashboard) ---
@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, db: Session = Depends(get_db), error: Optional[str] = None):
    session = get_current_session(request, db)
    if not session:
        return RedirectResponse(url="/login", status_code=303)

    try:
        resources = crud.list_root_resources(db, session.user_id)
    except SQLAlchemyError:
        # show an empty drive rather than failing the page
        db.rollback()
        logger.exception("Could not list resources of user %s", session.user_id)
        resources = []

    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "user": {"username": session.username},
            "files": resources,
            "error": ERROR_MESSAGES.get(error) if error else None,
        },
    )


# --- upload a new file ---
@router.post("/upload")
async def upload_file(
    request: Request,
    upload: Optional[UploadFile] = FastAPIFile(None, alias="fileToUpload"),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    session = get_current_session(request, db)
    if not session:
        return RedirectResponse(url="/login", status_code=303)

    if upload is None or not upload.filename:
        return _dashboard_error("NoFileUploaded")

    user_id = session.user_id
    content = await upload.read()

    try:
        key = storage.store(user_id, upload.filename, content, upload.content_type)
    except BlobStorageError:
        logger.exception("Could not store upload %r of user %s", upload.filename, user_id)
        return _dashboard_error("UploadFailed")

    try:
        crud.create_resource(db, user_id, "file", upload.filename, storage_key=key)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not save metadata for %r of user %s", upload.filename, user_id)
        # undo the blob so it does not linger without a row
        try:
            storage.delete(user_id, key)
        except BlobStorageError:
            logger.warning("Blob %s of user %s left for maintenance", key, user_id)
        return _dashboard_error("DatabaseError")

    logger.info("User %s uploaded %r as %s (%d bytes)", user_id, upload.filename, key, len(content))
    return RedirectResponse(url="/dashboard", status_code=303)


# --- create a folder ---
@router.post("/create-folder")
def create_folder(
    request: Request,
    folder_name: Optional[str] = Form(None, alias="folderName"),
    db: Session = Depends(get_db),
):
    session = get_current_session(request, db)
    if not session:
        return RedirectResponse(url="/login", status_code=303)

    name = (folder_name or "").strip()
    if not name:
        return _dashboard_error("FolderNameRequired")

    try:
        crud.create_resource(db, session.user_id, "folder", name)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not create folder %r for user %s", name, session.user_id)
        return _dashboard_error("DatabaseError")

    logger.info("User %s created folder %r", session.user_id, name)
    return RedirectResponse(url="/dashboard", status_code=303)


# --- delete a file or folder ---
@router.post("/delete/{resource_id}")
def delete_resource(
    resource_id: int,
    request: Request,
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    session = get_current_session(request, db)
    if not session:
        return RedirectResponse(url="/login", status_code=303)

    user_id = session.user_id
    if not 1 <= resource_id <= MAX_RESOURCE_ID:
        raise HTTPException(status_code=404, detail="Item not found or permission denied.")

    try:
        resource = crud.get_resource(db, resource_id, user_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not look up resource %s", resource_id)
        return _dashboard_error("DeleteFailed")

    # 404 for other users' items too, so their existence is not revealed
    if not resource:
        raise HTTPException(status_code=404, detail="Item not found or permission denied.")

    storage_key = resource.storage_key if resource.is_file else None

    try:
        crud.delete_resource(db, resource)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not delete resource %s", resource_id)
        return _dashboard_error("DeleteFailed")

    if storage_key:
        try:
            storage.delete(user_id, storage_key)
        except BlobNotFound:
            logger.warning("Blob %s of user %s was already gone", storage_key, user_id)
        except BlobStorageError:
            # the row is gone, maintenance removes the orphaned blob later
            logger.exception("Could not delete blob %s of user %s", storage_key, user_id)

    logger.info("User %s deleted resource %s", user_id, resource_id)
    return RedirectResponse(url="/dashboard", status_code=303)


# --- download a file ---
@router.get("/download/{storage_key}")
def download_file(
    storage_key: str,
    request: Request,
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    session = get_current_session(request, db)
    if not session:
        return RedirectResponse(url="/login", status_code=303)

    # only keys that belong to one of the caller's file rows are served
    try:
        resource = crud.get_file_by_storage_key(db, storage_key, session.user_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not look up file %s of user %s", storage_key, session.user_id)
        return _dashboard_error("DatabaseError")

    if not resource:
        raise HTTPException(status_code=404, detail="File not found.")

    try:
        return storage.download_response(session.user_id, resource.storage_key, resource.name)
    except BlobNotFound:
        logger.warning("Blob %s of user %s is missing", storage_key, session.user_id)
        raise HTTPException(status_code=404, detail="File not found.")
    except BlobStorageError:
        logger.exception("Could not read blob %s of user %s", storage_key, session.user_id)
        raise HTTPException(status_code=500, detail="File could not be read.")
