"""Source router: browse, upload, download and delete source documents."""

from fastapi import APIRouter, File, Query, Request, Response, UploadFile

from server.models.responses import DeleteFileResponse, SourceDocumentItem, SourceDocumentsResponse, UploadFileResponse
from shared.models.document import MIME_PDF, Document, SourceKind
from shared.models.errors import UnsupportedContentTypeError, ValidationError

source_router = APIRouter()


def _to_response(documents: list[Document], source_client) -> SourceDocumentsResponse:
    items = [
        SourceDocumentItem(
            document_id=document.document_id,
            display_name=document.display_name,
            mime_type=document.mime_type,
            last_modified_at=document.last_modified_at,
            supported=source_client.supports(document.mime_type),
        )
        for document in documents
    ]
    return SourceDocumentsResponse(documents=items, total=len(items))


@source_router.get("/files", tags=["Sources"])
async def list_files(request: Request, prefix: str | None = Query(default=None)) -> SourceDocumentsResponse:
    source_client = request.app.state.source_manager.get_client(SourceKind.BLOB)
    return _to_response(await source_client.do_list_documents(prefix), source_client)


@source_router.post("/files/upload", tags=["Sources"])
async def upload_file(request: Request, file: UploadFile = File(...)) -> UploadFileResponse:
    """Upload a PDF to the blob container, replacing a blob of the same name.

    The upload does not train anything; train or retrain through the blob training route.
    """
    filename = (file.filename or "").strip()
    if not filename:
        raise ValidationError("The uploaded file needs a filename.")
    if not filename.lower().endswith(".pdf"):
        raise UnsupportedContentTypeError(f"Only PDF files can be uploaded, got '{filename}'.")

    data = await file.read()
    source_client = request.app.state.source_manager.get_client(SourceKind.BLOB)
    await source_client.do_upload_document(filename, data, content_type=MIME_PDF)
    request.app.state.logging.info("Uploaded file '%s' (%d bytes).", filename, len(data))
    return UploadFileResponse(filename=filename, size=len(data))


@source_router.get("/files/{filename}/download", tags=["Sources"])
async def download_file(request: Request, filename: str) -> Response:
    source_client = request.app.state.source_manager.get_client(SourceKind.BLOB)
    data, mime_type = await source_client.do_download_document(filename)
    return Response(
        content=data,
        media_type=mime_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@source_router.delete("/files/{filename}", tags=["Sources"])
async def delete_file(request: Request, filename: str) -> DeleteFileResponse:
    """Delete a blob together with its trained vectors and tracking record."""
    source_client = request.app.state.source_manager.get_client(SourceKind.BLOB)
    record = await request.app.state.tracking_store.get_record(filename)
    affected_bots = list(record.used_by_bots) if record else []

    await request.app.state.lifecycle_service.remove_document_everywhere(filename)
    await source_client.do_delete_document(filename)
    request.app.state.logging.info("Deleted file '%s' (affected chatbots: %s).", filename, affected_bots)
    return DeleteFileResponse(filename=filename, affected_bots=affected_bots)


@source_router.get("/drive/list", tags=["Sources"])
async def list_drive_folder(
    request: Request,
    folder_id: str = Query(alias="folderId", min_length=1),
) -> SourceDocumentsResponse:
    source_client = request.app.state.source_manager.get_client(SourceKind.DRIVE)
    return _to_response(await source_client.do_list_documents(folder_id), source_client)
