# test_invoice_sync.py
#
# Imports
import pytest
#
# Local Imports
from grist_invoice_sync.grist_api import GristDocAPI, NotFoundError, RemoteError, ValidationError
from grist_invoice_sync.invoice_sync import InvoiceSyncer
#
########################################################################################################################
#
# Fixtures:

@pytest.fixture
def syncer(fake_grist, settings):
    def api_factory(doc_id, cfg):
        return GristDocAPI(doc_id, cfg, transport=fake_grist.transport)
    return InvoiceSyncer(settings, api_factory=api_factory)


@pytest.fixture
def source_doc(fake_grist):
    fake_grist.add_doc(
        "SRC", name="Billing",
        Invoices=[
            {"id": 10, "Invoice_ID": 7, "Date": 1_600_000_000, "CustomerJson": '{"name": "ACME"}',
             "InvoicerDocId": "DEST", "Total": 30},
            {"id": 11, "Invoice_ID": 8, "Date": 1_600_000_000, "CustomerJson": "{}", "InvoicerDocId": None},
        ],
        Items=[
            {"id": 20, "Invoice": 10, "Description": "Widget", "Unit_Price": 5, "Quantity": 2, "Notes": "x"},
            {"id": 21, "Invoice": 10, "Description": "Gadget", "Unit_Price": 10, "Quantity": 2, "Notes": "y"},
            {"id": 22, "Invoice": 11, "Description": "Other", "Unit_Price": 1, "Quantity": 1, "Notes": ""},
        ],
    )


def _dest_items(fake_grist, invoice_row_id):
    return sorted((r["Description"], r["Unit_Price"], r["Quantity"])
                  for r in fake_grist.rows("DEST", "Items") if r["Invoice"] == invoice_row_id)


########################################################################################################################
#
# sync_invoice:

@pytest.mark.integration
async def test_sync_creates_invoice_and_items(fake_grist, syncer, source_doc):
    fake_grist.add_doc("DEST", name="ACME Invoices", Invoices=[], Items=[])

    result = await syncer.sync_invoice(7)

    [dest_invoice] = fake_grist.rows("DEST", "Invoices")
    assert result.id == dest_invoice["id"]
    assert dest_invoice["Invoice_ID"] == 7
    assert dest_invoice["CustomerJson"] == '{"name": "ACME"}'
    assert dest_invoice["Last_Sync"] > 0
    assert "InvoicerDocId" not in dest_invoice
    assert _dest_items(fake_grist, result.id) == [("Gadget", 10, 2), ("Widget", 5, 2)]
    assert all("Notes" not in r for r in fake_grist.rows("DEST", "Items"))


@pytest.mark.integration
async def test_sync_updates_existing_copy_and_deletes_gone_items(fake_grist, syncer, source_doc):
    fake_grist.add_doc(
        "DEST",
        Invoices=[{"id": 3, "Invoice_ID": 7, "Date": 1, "CustomerJson": "{}", "Last_Sync": 0}],
        Items=[
            {"id": 30, "Invoice": 3, "Description": "Widget", "Unit_Price": 4, "Quantity": 2},
            {"id": 31, "Invoice": 3, "Description": "Removed", "Unit_Price": 1, "Quantity": 1},
            {"id": 32, "Invoice": 99, "Description": "Other invoice", "Unit_Price": 1, "Quantity": 1},
        ],
    )

    result = await syncer.sync_invoice(7)

    assert result.id == 3
    [dest_invoice] = fake_grist.rows("DEST", "Invoices")
    assert dest_invoice["Date"] == 1_600_000_000
    assert _dest_items(fake_grist, 3) == [("Gadget", 10, 2), ("Widget", 5, 2)]
    # Rows of other invoices are untouched.
    assert any(r["id"] == 32 for r in fake_grist.rows("DEST", "Items"))
    assert fake_grist.calls("POST", "/apply")[0][3] == [["BulkRemoveRecord", "Items", [31]]]


@pytest.mark.integration
async def test_second_sync_changes_only_last_sync(fake_grist, syncer, source_doc):
    fake_grist.add_doc("DEST", Invoices=[], Items=[])
    await syncer.sync_invoice(7)
    fake_grist.requests.clear()

    await syncer.sync_invoice(7)

    patches = [body for _, path, _, body in fake_grist.calls("PATCH")]
    assert len(patches) == 1
    assert set(patches[0]) == {"id", "Last_Sync"}
    assert fake_grist.calls("POST") == []


@pytest.mark.integration
async def test_sync_unknown_invoice(fake_grist, syncer, source_doc):
    with pytest.raises(NotFoundError, match="Invoice 42 not found"):
        await syncer.sync_invoice(42)


@pytest.mark.integration
async def test_sync_invoice_without_destination_doc(fake_grist, syncer, source_doc):
    with pytest.raises(ValidationError, match="DestDocId"):
        await syncer.sync_invoice(8)


@pytest.mark.unit
@pytest.mark.parametrize("invoice_id", [0, -1, None, "7", True])
async def test_sync_rejects_bad_invoice_id_without_network(fake_grist, syncer, invoice_id):
    with pytest.raises(ValidationError):
        await syncer.sync_invoice(invoice_id)
    assert fake_grist.requests == []


@pytest.mark.integration
async def test_sync_in_dry_run_does_not_write(fake_grist, settings, source_doc):
    fake_grist.add_doc("DEST", Invoices=[], Items=[])
    dry_settings = settings.model_copy(update={"dry_run": True})
    syncer = InvoiceSyncer(dry_settings, api_factory=lambda doc_id, cfg: GristDocAPI(
        doc_id, cfg, transport=fake_grist.transport))

    # The invoice is never created, so the lookup that follows fails.
    with pytest.raises(NotFoundError, match="failed to sync"):
        await syncer.sync_invoice(7)
    assert {r[0] for r in fake_grist.requests} == {"GET"}


@pytest.mark.integration
async def test_remote_failure_propagates(fake_grist, syncer, source_doc):
    fake_grist.add_doc("DEST", Invoices=[], Items=[])
    fake_grist.fail_next("POST", "/tables/Items/data", 500, {"error": "quota exceeded"})
    with pytest.raises(RemoteError, match="Grist: quota exceeded"):
        await syncer.sync_invoice(7)
    # The invoice itself stays synced.
    assert len(fake_grist.rows("DEST", "Invoices")) == 1


########################################################################################################################
#
# get_copy_info:

@pytest.mark.integration
async def test_copy_info_for_synced_invoice(fake_grist, syncer, source_doc, settings):
    fake_grist.add_doc(
        "DEST", name="ACME Invoices",
        Invoices=[{"id": 3, "Invoice_ID": 7, "Date": 1_600_000_000, "Last_Sync": 1_700_000_000.5, "Total": 30}],
    )
    info = await syncer.get_copy_info(7)
    assert info.doc_url == f"{settings.server}/doc/DEST"
    assert info.doc_name == "ACME Invoices"
    assert info.last_sync_timestamp == 1_700_000_000.5
    assert info.invoice_date == 1_600_000_000
    assert info.total == 30
    assert info.model_dump(by_alias=True)["docUrl"] == info.doc_url


@pytest.mark.integration
async def test_copy_info_for_never_synced_invoice(fake_grist, syncer, source_doc):
    fake_grist.add_doc("DEST", name="ACME Invoices", Invoices=[])
    info = await syncer.get_copy_info(7)
    assert info.doc_name == "ACME Invoices"
    assert info.last_sync_timestamp is None
    assert info.total is None


@pytest.mark.integration
async def test_copy_info_unknown_invoice(fake_grist, syncer, source_doc):
    with pytest.raises(NotFoundError):
        await syncer.get_copy_info(99)

#
# End of test_invoice_sync.py
########################################################################################################################
