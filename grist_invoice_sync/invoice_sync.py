# grist_invoice_sync/invoice_sync.py
# Description: Copies an invoice and its line items from the source Grist document into the
# invoicer's own document (named by the invoice's InvoicerDocId column).
#
# Imports
import time
from typing import Callable, List, Optional
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from grist_invoice_sync.config import GristSettings
from grist_invoice_sync.grist_api import (
    CopyInfo, GristDocAPI, NotFoundError, Record, SyncResult, ValidationError, find_obsolete_ids
)
from grist_invoice_sync.grist_api.utils import pick
#
#######################################################################################################################
#
# Functions:

INVOICES_TABLE = "Invoices"
ITEMS_TABLE = "Items"

INVOICE_COPY_COLUMNS = ["Invoice_ID", "Date", "CustomerJson"]
ITEM_COPY_COLUMNS = ["Description", "Unit_Price", "Quantity"]
INVOICE_KEY_COLUMNS = ["Invoice_ID"]
ITEM_KEY_COLUMNS = ["Invoice", "Description"]
# Items in the destination whose Description no longer appears in the source get deleted.
ITEM_NATURAL_KEY_COLUMNS = ["Description"]
DEST_DOC_COLUMN = "InvoicerDocId"


def _check_invoice_id(invoice_id) -> int:
    if not isinstance(invoice_id, int) or isinstance(invoice_id, bool) or invoice_id <= 0:
        raise ValidationError("Invalid or missing invoiceId")
    return invoice_id


class InvoiceSyncer:
    """Exposes the copy-info lookup and the invoice sync on top of GristDocAPI."""

    def __init__(self, settings: GristSettings, api_factory: Callable[..., GristDocAPI] = GristDocAPI):
        self.settings = settings
        self._api_factory = api_factory

    def _api(self, doc_id: str) -> GristDocAPI:
        return self._api_factory(doc_id, self.settings)

    async def _fetch_source_invoice(self, src: GristDocAPI, invoice_id: int) -> Record:
        invoices = await src.fetch_table(INVOICES_TABLE, {"Invoice_ID": [invoice_id]})
        if not invoices:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        logger.debug(f"sourceInvoice {invoices[0]}")
        return invoices[0]

    @staticmethod
    def _dest_doc_id(source_invoice: Record) -> str:
        dest_doc_id = source_invoice.get(DEST_DOC_COLUMN)
        if not dest_doc_id or not isinstance(dest_doc_id, str):
            raise ValidationError("DestDocId missing or invalid")
        return dest_doc_id

    async def _fetch_dest_invoice(self, dest: GristDocAPI, invoice_id: int) -> Optional[Record]:
        invoices = await dest.fetch_table(INVOICES_TABLE, {"Invoice_ID": [invoice_id]})
        return invoices[0] if invoices else None

    async def get_copy_info(self, invoice_id: int) -> CopyInfo:
        """Describes the destination document and the invoice's copy in it (if any)."""
        invoice_id = _check_invoice_id(invoice_id)
        async with self._api(self.settings.source_doc_id) as src:
            source_invoice = await self._fetch_source_invoice(src, invoice_id)
        dest_doc_id = self._dest_doc_id(source_invoice)

        async with self._api(dest_doc_id) as dest:
            dest_invoice = await self._fetch_dest_invoice(dest, invoice_id) or {}
            doc_info = await dest.get_doc_info() or {}
            info = CopyInfo(
                doc_url=dest.doc_url,
                doc_name=doc_info.get("name"),
                last_sync_timestamp=dest_invoice.get("Last_Sync"),
                invoice_date=dest_invoice.get("Date"),
                total=dest_invoice.get("Total"),
            )
        logger.info(f"invoice-copy-info #{invoice_id}: {info.invoice_date}, {info.total}")
        return info

    async def sync_invoice(self, invoice_id: int) -> SyncResult:
        """
        Syncs one invoice and its items into the destination document, then deletes destination
        items that are gone from the source. Returns the destination invoice's rowId.
        """
        invoice_id = _check_invoice_id(invoice_id)
        async with self._api(self.settings.source_doc_id) as src:
            source_invoice = await self._fetch_source_invoice(src, invoice_id)
            source_items = await src.fetch_table(ITEMS_TABLE, {"Invoice": [source_invoice["id"]]})
            logger.debug(f"sourceItems {source_items}")
        dest_doc_id = self._dest_doc_id(source_invoice)

        async with self._api(dest_doc_id) as dest:
            # Sync the invoice itself first: it will get added or updated.
            invoice_copy = pick(source_invoice, INVOICE_COPY_COLUMNS)
            invoice_copy["Last_Sync"] = time.time()
            await dest.sync_table(INVOICES_TABLE, [invoice_copy], INVOICE_KEY_COLUMNS)

            # Look it up again to get the id of a newly-added record.
            dest_invoice = await self._fetch_dest_invoice(dest, invoice_id)
            if dest_invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} failed to sync")
            dest_invoice_id = dest_invoice["id"]

            items_copy: List[Record] = [
                {**pick(item, ITEM_COPY_COLUMNS), "Invoice": dest_invoice_id} for item in source_items
            ]
            items_filter = {"Invoice": [dest_invoice_id]}
            await dest.sync_table(ITEMS_TABLE, items_copy, ITEM_KEY_COLUMNS, items_filter)

            # Delete gone items, because sync_table doesn't do it.
            dest_items = await dest.fetch_table(ITEMS_TABLE, items_filter)
            obsolete_ids = find_obsolete_ids(dest_items, items_copy, ITEM_NATURAL_KEY_COLUMNS)
            await dest.delete_records(ITEMS_TABLE, obsolete_ids)

        logger.info(f"Synced invoice #{invoice_id} with {len(items_copy)} items to record {dest_invoice_id}"
                    f" ({len(obsolete_ids)} items removed)")
        return SyncResult(id=dest_invoice_id)

#
# End of invoice_sync.py
#######################################################################################################################
