"""
Tests for invoicing.

Tests cover:
- Draft totals for intra-state, inter-state and B2C supplies
- Price fallback and the errors that stop a draft
- Finalize posts the primary and COGS entries atomically
- A failed finalize leaves the invoice a draft with no entries
- Deleting drafts and billing the shipment again
- Two callers finalizing the same draft
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from gst_billing.errors import (
    AccountInactive,
    InvalidAmount,
    InvoiceAlreadyExists,
    InvoiceNotDraft,
    InvoiceNotFound,
    MissingStateError,
    MissingUnitPrice,
    NoCustomerAssigned,
    ShipmentNotFound,
)
from gst_billing.models import AuditLog, Customer, Invoice, JournalEntry, TaxRate
from gst_billing.models.enums import (
    InvoiceStatus, InvoiceType, PaymentStatus, PostingRole, TransportMode,
)
from gst_billing.schemas.invoice import (
    ApproveInvoiceRequest,
    DraftInvoiceCreate,
    EWayBill,
    FinalizeRequest,
    TransportDetails,
)
from gst_billing.services.account_service import (
    AccountService,
    CGST_OUTPUT,
    COST_OF_GOODS_SOLD,
    IGST_OUTPUT,
    INVENTORY,
    SALES,
    SGST_OUTPUT,
    customer_ledger_code,
)
from gst_billing.services.invoice_service import InvoiceService
from gst_billing.services.ledger_service import LedgerService

INVOICE_DATE = date(2025, 10, 11)


@pytest.fixture
def service(db_session, tenant_id):
    return InvoiceService(db_session, tenant_id)


def draft_request(shipment, **kwargs):
    return DraftInvoiceCreate(shipment_id=shipment.id, invoice_date=INVOICE_DATE, **kwargs)


def count(db, model):
    return db.execute(select(func.count(model.id))).scalar()


def balance(db, tenant_id, code):
    account = AccountService(db, tenant_id).get_system_account(code)
    return LedgerService(db, tenant_id).get_account_balance(account.id)


class TestCreateDraft:

    def test_intra_state_totals(self, service, shipment):
        invoice = service.create_draft(draft_request(shipment))

        assert invoice.invoice_number == "INV-2025-00001"
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.payment_status == PaymentStatus.UNPAID
        assert invoice.invoice_type == InvoiceType.B2B
        assert invoice.subtotal == Decimal("1000.00")
        assert invoice.taxable_amount == Decimal("1000.00")
        assert invoice.cgst_amount == Decimal("90.00")
        assert invoice.sgst_amount == Decimal("90.00")
        assert invoice.igst_amount == Decimal("0.00")
        assert invoice.total_amount == Decimal("1180.00")
        assert invoice.balance_due == Decimal("1180.00")
        assert invoice.total_paid == Decimal("0.00")
        assert invoice.place_of_supply == "Maharashtra"
        assert invoice.company_state == "Maharashtra"

    def test_line_details(self, service, shipment, product):
        invoice = service.create_draft(draft_request(shipment))

        [line] = invoice.lines
        assert line.product_id == product.id
        assert line.description == "Cotton Bale"
        assert line.hsn_code == "5201"
        assert line.unit_price == Decimal("1000.00")
        assert line.unit_cost == Decimal("600.00")
        assert line.gst_rate == Decimal("18.00")
        assert line.cgst_rate == Decimal("9.00")
        assert line.line_total == Decimal("1180.00")

    def test_inter_state_b2c_charges_igst(self, service, make_shipment, interstate_customer, product):
        shipment = make_shipment(interstate_customer, [(product, 2)])

        invoice = service.create_draft(draft_request(shipment))

        assert invoice.invoice_type == InvoiceType.B2C
        assert invoice.igst_amount == Decimal("360.00")
        assert invoice.cgst_amount == Decimal("0.00")
        assert invoice.total_amount == Decimal("2360.00")
        assert invoice.lines[0].igst_rate == Decimal("18.00")

    def test_cost_price_used_when_no_selling_price(self, service, make_shipment, customer, make_product):
        product = make_product(selling_price=None, cost_price=Decimal("400.00"))
        shipment = make_shipment(customer, [(product, 1)])

        invoice = service.create_draft(draft_request(shipment))

        assert invoice.lines[0].unit_price == Decimal("400.00")
        assert invoice.total_amount == Decimal("472.00")

    def test_no_price_at_all(self, db_session, service, make_shipment, customer, make_product):
        product = make_product(selling_price=None, cost_price=None)
        shipment = make_shipment(customer, [(product, 1)])

        with pytest.raises(MissingUnitPrice):
            service.create_draft(draft_request(shipment))
        assert count(db_session, Invoice) == 0

    def test_discount_reduces_taxable_amount(self, service, make_shipment, customer, product):
        shipment = make_shipment(customer, [(product, 3, "500.00")])

        invoice = service.create_draft(draft_request(shipment))

        assert invoice.subtotal == Decimal("3000.00")
        assert invoice.discount_amount == Decimal("500.00")
        assert invoice.taxable_amount == Decimal("2500.00")
        assert invoice.cgst_amount == Decimal("225.00")
        assert invoice.total_amount == Decimal("2950.00")

    def test_discount_larger_than_line_rejected(self, service, make_shipment, customer, product):
        shipment = make_shipment(customer, [(product, 1, "1500.00")])

        with pytest.raises(InvalidAmount):
            service.create_draft(draft_request(shipment))

    def test_adjustment_is_added_to_total(self, service, make_shipment, customer, make_product):
        product = make_product(selling_price=Decimal("4237.29"))
        shipment = make_shipment(customer, [(product, 1)])

        invoice = service.create_draft(
            draft_request(shipment, adjustment_amount=Decimal("-0.01"))
        )

        assert invoice.cgst_amount == Decimal("381.36")
        assert invoice.adjustment_amount == Decimal("-0.01")
        assert invoice.total_amount == Decimal("5000.00")

    def test_multiple_lines(self, service, make_shipment, customer, product, make_product):
        polyester = make_product(selling_price=Decimal("250.00"))
        shipment = make_shipment(customer, [(product, 1), (polyester, 4)])

        invoice = service.create_draft(draft_request(shipment))

        assert [l.line_no for l in invoice.lines] == [1, 2]
        assert invoice.subtotal == Decimal("2000.00")
        assert invoice.total_amount == Decimal("2360.00")

    def test_unknown_shipment(self, service, tenant_id):
        with pytest.raises(ShipmentNotFound):
            service.create_draft(DraftInvoiceCreate(shipment_id=999))

    def test_shipment_without_customer(self, service, make_shipment, product):
        shipment = make_shipment(None, [(product, 1)])

        with pytest.raises(NoCustomerAssigned):
            service.create_draft(draft_request(shipment))

    def test_shipment_billed_once(self, db_session, service, shipment):
        service.create_draft(draft_request(shipment))

        with pytest.raises(InvoiceAlreadyExists):
            service.create_draft(draft_request(shipment))
        assert count(db_session, Invoice) == 1

    def test_missing_customer_state_writes_nothing(self, db_session, tenant_id, service, make_shipment, product):
        stateless = Customer(tenant_id=tenant_id, name="Walk-in", state=None)
        db_session.add(stateless)
        db_session.commit()
        shipment = make_shipment(stateless, [(product, 1)])

        with pytest.raises(MissingStateError):
            service.create_draft(draft_request(shipment))
        assert count(db_session, Invoice) == 0

    def test_invoice_numbers_continue(self, service, make_shipment, customer, product):
        first = service.create_draft(draft_request(make_shipment(customer, [(product, 1)])))
        second = service.create_draft(draft_request(make_shipment(customer, [(product, 1)])))

        assert (first.invoice_number, second.invoice_number) == (
            "INV-2025-00001", "INV-2025-00002",
        )

    def test_fractional_rate_split_is_stored_exactly(
        self, db_session, session_factory, tenant_id, service, make_shipment, customer, make_product
    ):
        db_session.add(TaxRate(tenant_id=tenant_id, code="7102", rate=Decimal("0.25")))
        db_session.commit()
        diamond = make_product(name="Rough Diamond", selling_price=Decimal("10000.00"), hsn_code="7102")

        draft = service.create_draft(draft_request(make_shipment(customer, [(diamond, 1)])))

        [line] = InvoiceService(session_factory(), tenant_id).get_invoice(draft.id).lines
        assert line.gst_rate == Decimal("0.25")
        assert line.cgst_rate == Decimal("0.125")
        assert line.sgst_rate == Decimal("0.125")
        assert line.cgst_amount == Decimal("12.50")

    def test_lost_race_for_shipment(self, db_session, session_factory, tenant_id, service, shipment, monkeypatch):
        winner = InvoiceService(session_factory(), tenant_id).create_draft(draft_request(shipment))
        # This caller checked the shipment before the other draft was committed
        monkeypatch.setattr(InvoiceService, "_billed_as", lambda self, shipment_id: None)

        with pytest.raises(InvoiceAlreadyExists, match="billed concurrently"):
            service.create_draft(draft_request(shipment))

        assert count(db_session, Invoice) == 1
        assert service.get_invoice(winner.id).invoice_number == "INV-2025-00001"


class TestFinalize:

    def test_posts_primary_entry(self, db_session, tenant_id, service, shipment, customer):
        draft = service.create_draft(draft_request(shipment))

        invoice = service.finalize(draft.id, finalized_by="accountant-1")

        assert invoice.status == InvoiceStatus.FINALIZED
        assert invoice.finalized_by == "accountant-1"
        assert invoice.finalized_at is not None

        primary, cogs = service.get_journal_entries(invoice.id)
        assert primary.posting_role == PostingRole.PRIMARY
        assert primary.narration == "Sales invoice INV-2025-00001"
        assert primary.entry_date == INVOICE_DATE
        assert primary.total_debit == primary.total_credit == Decimal("1180.00")
        amounts = [(l.debit_amount, l.credit_amount) for l in primary.lines]
        assert amounts == [
            (Decimal("1180.00"), Decimal("0.00")),
            (Decimal("0.00"), Decimal("1000.00")),
            (Decimal("0.00"), Decimal("90.00")),
            (Decimal("0.00"), Decimal("90.00")),
        ]

        assert balance(db_session, tenant_id, SALES) == Decimal("1000.00")
        assert balance(db_session, tenant_id, CGST_OUTPUT) == Decimal("90.00")
        assert balance(db_session, tenant_id, SGST_OUTPUT) == Decimal("90.00")
        receivable = AccountService(db_session, tenant_id).get_or_create_customer_ledger(customer.id)
        assert receivable.code == customer_ledger_code(customer.id)
        assert receivable.current_balance == Decimal("1180.00")

    def test_posts_cogs_entry(self, db_session, tenant_id, service, shipment):
        draft = service.create_draft(draft_request(shipment))
        service.finalize(draft.id)

        _, cogs = service.get_journal_entries(draft.id)
        assert cogs.posting_role == PostingRole.COGS
        assert cogs.total_debit == Decimal("600.00")
        assert balance(db_session, tenant_id, COST_OF_GOODS_SOLD) == Decimal("600.00")
        assert balance(db_session, tenant_id, INVENTORY) == Decimal("-600.00")

    def test_no_cogs_without_cost(self, service, make_shipment, customer, make_product):
        product = make_product(selling_price=Decimal("100.00"), cost_price=None)
        draft = service.create_draft(draft_request(make_shipment(customer, [(product, 1)])))
        service.finalize(draft.id)

        entries = service.get_journal_entries(draft.id)
        assert [e.posting_role for e in entries] == [PostingRole.PRIMARY]

    def test_inter_state_posts_igst(self, db_session, tenant_id, service, make_shipment, interstate_customer, product):
        shipment = make_shipment(interstate_customer, [(product, 1)])
        draft = service.create_draft(draft_request(shipment))
        service.finalize(draft.id)

        assert balance(db_session, tenant_id, IGST_OUTPUT) == Decimal("180.00")
        assert balance(db_session, tenant_id, CGST_OUTPUT) == Decimal("0.00")

    def test_adjustment_posts_to_round_off(self, service, make_shipment, customer, make_product):
        product = make_product(selling_price=Decimal("4237.29"))
        draft = service.create_draft(draft_request(
            make_shipment(customer, [(product, 1)]),
            adjustment_amount=Decimal("-0.01"),
        ))
        service.finalize(draft.id)

        primary = service.get_journal_entries(draft.id)[0]
        assert primary.total_debit == primary.total_credit == Decimal("5000.01")
        assert primary.lines[-1].debit_amount == Decimal("0.01")

    def test_transport_details_saved(self, service, shipment):
        draft = service.create_draft(draft_request(shipment))

        invoice = service.finalize(draft.id, FinalizeRequest(
            transport=TransportDetails(
                vehicle_number="MH12AB1234",
                transport_mode=TransportMode.ROAD,
                distance_km=120,
            ),
            e_way_bill=EWayBill(e_way_bill_number="331000123456"),
            terms_and_conditions="Payment within 30 days",
        ))

        assert invoice.vehicle_number == "MH12AB1234"
        assert invoice.transport_mode == TransportMode.ROAD
        assert invoice.distance_km == 120
        assert invoice.e_way_bill_number == "331000123456"
        assert invoice.terms_and_conditions == "Payment within 30 days"

    def test_finalize_twice(self, db_session, service, shipment):
        draft = service.create_draft(draft_request(shipment))
        service.finalize(draft.id)

        with pytest.raises(InvoiceNotDraft):
            service.finalize(draft.id)
        assert len(service.get_journal_entries(draft.id)) == 2

    def test_failed_posting_leaves_draft(self, db_session, tenant_id, service, shipment):
        accounts = AccountService(db_session, tenant_id)
        accounts.setup_chart_of_accounts()
        sales = accounts.get_system_account(SALES)
        sales.is_active = False
        db_session.commit()
        draft = service.create_draft(draft_request(shipment))

        with pytest.raises(AccountInactive):
            service.finalize(draft.id)

        invoice = service.get_invoice(draft.id)
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.finalized_at is None
        assert service.get_journal_entries(draft.id) == []
        assert count(db_session, JournalEntry) == 0

    def test_unknown_invoice(self, service, tenant_id):
        with pytest.raises(InvoiceNotFound):
            service.finalize(999)

    def test_concurrent_finalize_posts_once(self, service, session_factory, tenant_id, shipment):
        draft = service.create_draft(draft_request(shipment))
        first = InvoiceService(session_factory(), tenant_id)
        second = InvoiceService(session_factory(), tenant_id)
        # Both callers read the draft before either finalizes
        assert second.get_invoice(draft.id).status == InvoiceStatus.DRAFT

        first.finalize(draft.id)
        with pytest.raises(InvoiceNotDraft):
            second.finalize(draft.id)

        entries = first.get_journal_entries(draft.id)
        assert [e.posting_role for e in entries] == [PostingRole.PRIMARY, PostingRole.COGS]

    def test_lost_race_after_reading_draft(
        self, db_session, session_factory, tenant_id, service, shipment, monkeypatch
    ):
        draft = service.create_draft(draft_request(shipment))
        other = InvoiceService(session_factory(), tenant_id)
        lock_invoice = InvoiceService.lock_invoice

        def lock_then_lose(self, invoice_id):
            invoice = lock_invoice(self, invoice_id)
            if self is service:
                # The other caller finalizes between our read and our update
                other.finalize(invoice_id, finalized_by="other")
            return invoice

        monkeypatch.setattr(InvoiceService, "lock_invoice", lock_then_lose)

        with pytest.raises(InvoiceNotDraft, match="finalized concurrently"):
            service.finalize(draft.id, finalized_by="accountant-1")

        invoice = service.get_invoice(draft.id)
        assert invoice.finalized_by == "other"
        assert count(db_session, JournalEntry) == 2
        assert balance(db_session, tenant_id, SALES) == Decimal("1000.00")

    def test_audit_trail(self, db_session, service, shipment):
        draft = service.create_draft(draft_request(shipment), created_by="clerk")
        service.finalize(draft.id, finalized_by="accountant-1")

        events = db_session.execute(
            select(AuditLog.event_type, AuditLog.actor_id)
            .where(AuditLog.entity_type == "Invoice", AuditLog.entity_id == draft.id)
            .order_by(AuditLog.id)
        ).all()
        assert [tuple(e) for e in events] == [
            ("invoice.draft_created", "clerk"),
            ("invoice.finalized", "accountant-1"),
        ]


class TestCreateAndFinalize:

    def test_approve_in_one_step(self, service, shipment):
        invoice = service.create_and_finalize(ApproveInvoiceRequest(
            shipment_id=shipment.id,
            invoice_date=INVOICE_DATE,
            transport=TransportDetails(vehicle_number="MH12AB1234"),
        ), actor="accountant-1")

        assert invoice.status == InvoiceStatus.FINALIZED
        assert invoice.vehicle_number == "MH12AB1234"
        assert len(service.get_journal_entries(invoice.id)) == 2

    def test_failure_writes_nothing(self, db_session, tenant_id, service, shipment):
        accounts = AccountService(db_session, tenant_id)
        accounts.setup_chart_of_accounts()
        accounts.get_system_account(SALES).is_active = False
        db_session.commit()

        with pytest.raises(AccountInactive):
            service.create_and_finalize(ApproveInvoiceRequest(shipment_id=shipment.id))

        assert count(db_session, Invoice) == 0
        assert count(db_session, JournalEntry) == 0
        assert count(db_session, AuditLog) == 0


class TestPreview:

    def test_preview_prices_without_saving(self, db_session, service, make_shipment, interstate_customer, product):
        shipment = make_shipment(interstate_customer, [(product, 2)])

        preview = service.preview(shipment.id, Decimal("-0.50"))

        assert preview.id is None
        assert preview.invoice_number is None
        assert preview.invoice_type == InvoiceType.B2C
        assert preview.place_of_supply == "Karnataka"
        assert preview.igst_amount == Decimal("360.00")
        assert preview.adjustment_amount == Decimal("-0.50")
        assert preview.total_amount == Decimal("2359.50")
        assert [line.line_total for line in preview.lines] == [Decimal("2360.00")]
        assert count(db_session, Invoice) == 0
        assert count(db_session, AuditLog) == 0

    def test_preview_does_not_consume_a_number(self, service, shipment):
        service.preview(shipment.id)

        draft = service.create_draft(draft_request(shipment))
        assert draft.invoice_number == "INV-2025-00001"

    def test_preview_of_billed_shipment(self, service, shipment):
        service.create_draft(draft_request(shipment))

        with pytest.raises(InvoiceAlreadyExists):
            service.preview(shipment.id)

    def test_preview_of_unknown_shipment(self, service):
        with pytest.raises(ShipmentNotFound):
            service.preview(999)


class TestDeleteDraft:

    def test_shipment_can_be_billed_again(self, db_session, service, shipment):
        draft = service.create_draft(draft_request(shipment))

        service.delete_draft(draft.id, actor="clerk")

        with pytest.raises(InvoiceNotFound):
            service.get_invoice(draft.id)
        again = service.create_draft(draft_request(shipment))
        # Numbers are not reused
        assert again.invoice_number == "INV-2025-00002"

    def test_finalized_invoice_cannot_be_deleted(self, service, shipment):
        draft = service.create_draft(draft_request(shipment))
        service.finalize(draft.id)

        with pytest.raises(InvoiceNotDraft):
            service.delete_draft(draft.id)


class TestQueries:

    def test_list_by_status(self, service, make_shipment, customer, product):
        finalized = service.create_draft(draft_request(make_shipment(customer, [(product, 1)])))
        service.finalize(finalized.id)
        draft = service.create_draft(draft_request(make_shipment(customer, [(product, 1)])))

        drafts = service.list_invoices(status=InvoiceStatus.DRAFT)
        assert [i.id for i in drafts] == [draft.id]
        assert len(service.list_invoices(customer_id=customer.id)) == 2
        assert service.list_invoices(is_credit_note=True) == []
