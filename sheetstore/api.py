"""
HTTP routes. Handlers only translate requests into service calls; the caller
is identified by the configured user header.
"""

from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from .config.settings import get_settings
from .exceptions import InvalidArgumentError
from .models.cell_model import CellUpdate
from .models.user_model import PermissionType
from .services.container import ServiceContainer
from .services.workbook_codec import XLSX_CONTENT_TYPE

ZIP_CONTENT_TYPES = {"application/zip", "application/x-zip-compressed"}


# Request bodies

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    email: Optional[str] = None


class SpreadsheetRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class SpreadsheetUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class SheetRequest(BaseModel):
    name: str = Field(..., min_length=1)


class CellUpdateRequest(BaseModel):
    cells: List[CellUpdate] = Field(default_factory=list)


class RowRequest(BaseModel):
    values: List[Optional[str]] = Field(default_factory=list)


class MultipleRowsRequest(BaseModel):
    rows: List[List[Optional[str]]] = Field(default_factory=list)


class ColumnRequest(BaseModel):
    values: List[Optional[str]] = Field(default_factory=list)


class PermissionRequest(BaseModel):
    username: str = Field(..., min_length=1)
    permission_type: PermissionType


# Dependencies

def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def current_username(request: Request) -> str:
    username = request.headers.get(get_settings().USER_HEADER)
    if not username:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return username


def content_disposition(filename: str) -> str:
    """Attachment header value. Names that need escaping use RFC 5987 encoding."""
    encoded = quote(filename, safe="")
    if encoded != filename:
        return f"attachment; filename*=utf-8''{encoded}"
    return f'attachment; filename="{filename}"'


def _attachment(content: bytes, media_type: Optional[str], filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(filename)},
    )


def _message(text: str) -> dict:
    return {"message": text}


auth_router = APIRouter(prefix="/auth", tags=["auth"])
spreadsheet_router = APIRouter(prefix="/spreadsheets", tags=["spreadsheets"])
sheet_router = APIRouter(prefix="/sheets", tags=["sheets"])
media_router = APIRouter(prefix="/media", tags=["media"])


# Users

@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.register_user(body.username, body.email).to_dict()


# Spreadsheets

@spreadsheet_router.post("", status_code=status.HTTP_201_CREATED)
def create_spreadsheet(body: SpreadsheetRequest,
                       username: str = Depends(current_username),
                       services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.create_spreadsheet(body.name, body.description, username).to_dict()


@spreadsheet_router.get("")
def list_spreadsheets(username: str = Depends(current_username),
                      services: ServiceContainer = Depends(get_services)):
    return [summary.to_dict() for summary in services.spreadsheets.list_spreadsheets(username)]


@spreadsheet_router.get("/{spreadsheet_id}")
def get_spreadsheet(spreadsheet_id: str,
                    username: str = Depends(current_username),
                    services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.get_spreadsheet(spreadsheet_id, username).to_dict()


@spreadsheet_router.put("/{spreadsheet_id}")
def update_spreadsheet(spreadsheet_id: str, body: SpreadsheetUpdateRequest,
                       username: str = Depends(current_username),
                       services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.update_spreadsheet(
        spreadsheet_id, username, name=body.name, description=body.description).to_dict()


@spreadsheet_router.delete("/{spreadsheet_id}")
def delete_spreadsheet(spreadsheet_id: str,
                       username: str = Depends(current_username),
                       services: ServiceContainer = Depends(get_services)):
    services.spreadsheets.delete_spreadsheet(spreadsheet_id, username)
    return _message("Spreadsheet deleted successfully")


@spreadsheet_router.get("/{spreadsheet_id}/permissions")
def list_permissions(spreadsheet_id: str,
                     username: str = Depends(current_username),
                     services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.list_permissions(spreadsheet_id, username)


@spreadsheet_router.post("/{spreadsheet_id}/permissions")
def grant_permission(spreadsheet_id: str, body: PermissionRequest,
                     username: str = Depends(current_username),
                     services: ServiceContainer = Depends(get_services)):
    services.spreadsheets.grant_permission(spreadsheet_id, username, body.username, body.permission_type)
    return _message("Permission granted successfully")


@spreadsheet_router.delete("/{spreadsheet_id}/permissions/{target_username}")
def revoke_permission(spreadsheet_id: str, target_username: str,
                      username: str = Depends(current_username),
                      services: ServiceContainer = Depends(get_services)):
    services.spreadsheets.revoke_permission(spreadsheet_id, username, target_username)
    return _message("Permission revoked successfully")


@spreadsheet_router.get("/{spreadsheet_id}/export")
def export_workbook(spreadsheet_id: str,
                    username: str = Depends(current_username),
                    services: ServiceContainer = Depends(get_services)):
    content = services.workbooks.export_workbook(spreadsheet_id, username)
    return _attachment(content, XLSX_CONTENT_TYPE, f"spreadsheet_{spreadsheet_id}.xlsx")


@spreadsheet_router.get("/{spreadsheet_id}/export/zip")
def export_archive(spreadsheet_id: str,
                   username: str = Depends(current_username),
                   services: ServiceContainer = Depends(get_services)):
    content = services.archives.export_spreadsheet(spreadsheet_id, username)
    return _attachment(content, "application/zip", f"spreadsheet_{spreadsheet_id}.zip")


@spreadsheet_router.post("/import", status_code=status.HTTP_201_CREATED)
def import_workbook(file: UploadFile = File(...),
                    username: str = Depends(current_username),
                    services: ServiceContainer = Depends(get_services)):
    return services.workbooks.import_workbook(file.file.read(), file.filename, username).to_dict()


@spreadsheet_router.post("/import/zip", status_code=status.HTTP_201_CREATED)
def import_archive(file: UploadFile = File(...),
                   username: str = Depends(current_username),
                   services: ServiceContainer = Depends(get_services)):
    filename = (file.filename or "").lower()
    if file.content_type not in ZIP_CONTENT_TYPES and not filename.endswith(".zip"):
        raise InvalidArgumentError("File must be a ZIP archive")
    return services.archives.import_spreadsheet(file.file.read(), username).to_dict()


# Sheets

@sheet_router.post("/spreadsheet/{spreadsheet_id}", status_code=status.HTTP_201_CREATED)
def create_sheet(spreadsheet_id: str, body: SheetRequest,
                 username: str = Depends(current_username),
                 services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.create_sheet(spreadsheet_id, body.name, username).to_dict()


@sheet_router.get("/{sheet_id}")
def get_sheet(sheet_id: str,
              username: str = Depends(current_username),
              services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.get_sheet(sheet_id, username).to_dict()


@sheet_router.put("/{sheet_id}")
def rename_sheet(sheet_id: str, body: SheetRequest,
                 username: str = Depends(current_username),
                 services: ServiceContainer = Depends(get_services)):
    return services.spreadsheets.rename_sheet(sheet_id, body.name, username).to_dict()


@sheet_router.delete("/{sheet_id}")
def delete_sheet(sheet_id: str,
                 username: str = Depends(current_username),
                 services: ServiceContainer = Depends(get_services)):
    services.mutations.delete_sheet(sheet_id, username)
    return _message("Sheet deleted successfully")


@sheet_router.put("/{sheet_id}/cells")
def update_cells(sheet_id: str, body: CellUpdateRequest,
                 username: str = Depends(current_username),
                 services: ServiceContainer = Depends(get_services)):
    services.mutations.update_cells(sheet_id, body.cells, username)
    return _message("Cells updated successfully")


@sheet_router.put("/{sheet_id}/rows/{row}")
def update_row(sheet_id: str, row: int, body: RowRequest,
               username: str = Depends(current_username),
               services: ServiceContainer = Depends(get_services)):
    services.mutations.update_row(sheet_id, row, body.values, username)
    return _message("Row updated successfully")


@sheet_router.post("/{sheet_id}/rows")
def append_row(sheet_id: str, body: RowRequest,
               username: str = Depends(current_username),
               services: ServiceContainer = Depends(get_services)):
    row = services.mutations.append_row(sheet_id, body.values, username)
    return {"message": "Row appended successfully", "row": row}


@sheet_router.post("/{sheet_id}/rows/multiple")
def append_rows(sheet_id: str, body: MultipleRowsRequest,
                username: str = Depends(current_username),
                services: ServiceContainer = Depends(get_services)):
    count = services.mutations.append_rows(sheet_id, body.rows, username)
    return {"message": f"{count} rows added successfully", "count": count}


@sheet_router.post("/{sheet_id}/rows/insert")
def insert_rows(sheet_id: str,
                start_row: int = Query(..., alias="startRow"),
                count: int = Query(1),
                username: str = Depends(current_username),
                services: ServiceContainer = Depends(get_services)):
    services.mutations.insert_rows(sheet_id, start_row, count, username)
    return _message("Rows inserted successfully")


@sheet_router.delete("/{sheet_id}/rows")
def delete_rows(sheet_id: str,
                start_row: int = Query(..., alias="startRow"),
                count: int = Query(1),
                username: str = Depends(current_username),
                services: ServiceContainer = Depends(get_services)):
    services.mutations.delete_rows(sheet_id, start_row, count, username)
    return _message("Rows deleted successfully")


@sheet_router.delete("/{sheet_id}/rows/{row}")
def delete_row(sheet_id: str, row: int,
               username: str = Depends(current_username),
               services: ServiceContainer = Depends(get_services)):
    services.mutations.delete_rows(sheet_id, row, 1, username)
    return _message("Row deleted successfully")


@sheet_router.post("/{sheet_id}/columns/{col}")
def insert_column(sheet_id: str, col: int, body: ColumnRequest,
                  username: str = Depends(current_username),
                  services: ServiceContainer = Depends(get_services)):
    services.mutations.insert_column(sheet_id, col, body.values, username)
    return _message("Column inserted successfully")


@sheet_router.delete("/{sheet_id}/columns/{col}")
def delete_column(sheet_id: str, col: int,
                  username: str = Depends(current_username),
                  services: ServiceContainer = Depends(get_services)):
    services.mutations.delete_column(sheet_id, col, username)
    return _message("Column deleted successfully")


# Media

@media_router.post("/spreadsheet/{spreadsheet_id}", status_code=status.HTTP_201_CREATED)
def upload_media(spreadsheet_id: str, file: UploadFile = File(...),
                 username: str = Depends(current_username),
                 services: ServiceContainer = Depends(get_services)):
    media = services.media.upload_media(
        spreadsheet_id, file.filename, file.file.read(), file.content_type, username)
    return media.to_dict()


@media_router.get("/spreadsheet/{spreadsheet_id}")
def list_media(spreadsheet_id: str,
               username: str = Depends(current_username),
               services: ServiceContainer = Depends(get_services)):
    return [media.to_dict() for media in services.media.list_media(spreadsheet_id, username)]


@media_router.get("/{media_id}/download")
def download_media(media_id: str,
                   username: str = Depends(current_username),
                   services: ServiceContainer = Depends(get_services)):
    media, content = services.media.download_media(media_id, username)
    return _attachment(content, media.content_type, media.filename)


@media_router.delete("/{media_id}")
def delete_media(media_id: str,
                 username: str = Depends(current_username),
                 services: ServiceContainer = Depends(get_services)):
    services.media.delete_media(media_id, username)
    return _message("Media deleted successfully")


routers = [auth_router, spreadsheet_router, sheet_router, media_router]
