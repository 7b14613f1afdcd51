# grist_invoice_sync/server.py
# Description: HTTP endpoints used by the invoice widget: copy-info lookup and invoice sync.
#
# Imports
import time
from typing import Optional
#
# 3rd-party imports
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
#
# Local Imports
from grist_invoice_sync.config import GristSettings
from grist_invoice_sync.grist_api import (
    CopyInfo, ErrorResponse, GristAPIError, NotFoundError, RemoteError, SyncResult, ValidationError
)
from grist_invoice_sync.invoice_sync import InvoiceSyncer
#
#######################################################################################################################
#
# Functions:

def parse_invoice_id(raw: str) -> int:
    """Parses the invoiceId path parameter; a missing, unparseable or zero value is rejected."""
    try:
        invoice_id = int(raw.strip())
    except (AttributeError, ValueError):
        invoice_id = 0
    if invoice_id <= 0:
        raise ValidationError("Invalid or missing invoiceId")
    return invoice_id


def _error_status(err: Exception) -> int:
    if isinstance(err, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(err, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(err, RemoteError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


SYNC_ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (
        status.HTTP_400_BAD_REQUEST, status.HTTP_404_NOT_FOUND,
        status.HTTP_500_INTERNAL_SERVER_ERROR, status.HTTP_502_BAD_GATEWAY,
    )
}


def create_app(settings: GristSettings, syncer: Optional[InvoiceSyncer] = None) -> FastAPI:
    app = FastAPI(title="Grist Invoice Sync")
    app.state.settings = settings
    app.state.syncer = syncer or InvoiceSyncer(settings)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f} ms")
        return response

    @app.get("/invoice-copy-info/{invoice_id}", response_model=CopyInfo,
             responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
             summary="Describe the destination copy of an invoice")
    async def get_copy_info(invoice_id: str, request: Request):
        try:
            return await request.app.state.syncer.get_copy_info(parse_invoice_id(invoice_id))
        except Exception as err:
            logger.warning(f"Copy info failed with {err}")
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(err)})

    @app.post("/sync/{invoice_id}", response_model=SyncResult, responses=SYNC_ERROR_RESPONSES,
              summary="Sync an invoice to its invoicer's document")
    async def sync(invoice_id: str, request: Request):
        try:
            return await request.app.state.syncer.sync_invoice(parse_invoice_id(invoice_id))
        except GristAPIError as err:
            logger.warning(f"Sync failed with {err}")
            return JSONResponse(status_code=_error_status(err), content={"error": str(err)})
        except Exception as err:
            logger.exception(f"Sync failed with {err}")
            return JSONResponse(status_code=_error_status(err), content={"error": str(err)})

    return app

#
# End of server.py
#######################################################################################################################
