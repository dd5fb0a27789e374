"""
Tests for PricingService and the rate grid persistence helpers.

The service works inside the caller's session; each test commits through
the shared ``session`` fixture and asserts on the same session.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from pricing_batch import CalculationBasis, ReconciliationRunner, RecordOutcome
from pricing_engines.allocation import PricingOverrides
from pricing_kernel.db.engine import session_scope
from pricing_kernel.domain.modes import AllocationMode, PartyRole
from pricing_kernel.exceptions import (
    InvalidQuantityError,
    InvoiceConflictError,
    NegativeBrokerMarginError,
    UnknownSizeError,
)
from pricing_kernel.models.audit_event import PricingAuditAction, PricingAuditEvent
from pricing_kernel.models.job import JobPricingModel
from pricing_kernel.models.rate import RateTableEntryModel
from pricing_kernel.utils.hashing import hash_payload
from pricing_services import PricingService, load_rate_table, seed_rate_table
from tests.conftest import STANDARD_SIZE, TEST_ACTOR_ID


@pytest.fixture
def service(session, engine, deterministic_clock):
    return PricingService(session, engine, clock=deterministic_clock)


@pytest.fixture
def price(service, session):
    """Price and commit, standard 15,000 piece job by default."""

    def _price(job_number="J-1", **kwargs):
        kwargs.setdefault("quantity", 15000)
        kwargs.setdefault("mode", AllocationMode.STANDARD)
        kwargs.setdefault("size_key", STANDARD_SIZE)
        result = service.price_job(job_number=job_number, actor_id=TEST_ACTOR_ID, **kwargs)
        session.commit()
        return result

    return _price


def _job(session, job_number="J-1") -> JobPricingModel:
    return session.execute(
        select(JobPricingModel).where(JobPricingModel.job_number == job_number)
    ).scalar_one()


def _audit(session) -> list[PricingAuditEvent]:
    return list(session.execute(select(PricingAuditEvent).order_by(PricingAuditEvent.occurred_at)).scalars())


def _count(session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar()


class TestCreate:

    def test_new_job_written(self, price, session):
        result = price()
        assert result.created
        assert result.written
        job = _job(session)
        assert job.customer_total == Decimal("1603.65")
        assert job.broker_margin_total == Decimal("111.15")
        assert job.printer_total == Decimal("737.70")
        assert job.mode == "STANDARD"
        assert job.updated_by == TEST_ACTOR_ID

    def test_audit_row(self, price, session, deterministic_clock):
        price()
        [row] = _audit(session)
        assert row.action == PricingAuditAction.JOB_PRICED.value
        assert row.job_number == "J-1"
        assert row.entity_type == "JobPricing"
        assert row.run_id is None
        assert row.payload["new"]["customer_total"] == "1603.65"
        assert row.payload["direction"] == "forward"
        assert row.payload["is_custom_pricing"] is False
        assert row.payload_hash == hash_payload(row.payload)

    def test_audit_names_configured_parties(self, session, engine, pricing_config):
        service = PricingService(session, engine, parties=pricing_config.parties)
        service.price_job(
            job_number="J-1",
            quantity=15000,
            mode=AllocationMode.STANDARD,
            size_key=STANDARD_SIZE,
            actor_id=TEST_ACTOR_ID,
        )
        session.commit()
        [row] = _audit(session)
        assert row.payload["parties"] == pricing_config.parties.as_payload()

    def test_overrides_stored(self, price, session):
        price(overrides=PricingOverrides(print_cpm=Decimal("45.00")))
        job = _job(session)
        assert job.print_cpm_override == Decimal("45.00")
        assert job.printer_total == Decimal("675.00")
        assert job.material_cost_cpm_override is None

    def test_custom_pricing_off_grid(self, price, session):
        result = price(
            size_key="5 x 7",
            overrides=PricingOverrides(
                customer_cpm=Decimal("60.00"),
                print_cpm=Decimal("20.00"),
                material_cost_cpm=Decimal("10.00"),
            ),
        )
        assert result.breakdown.is_custom_pricing
        assert _audit(session)[0].payload["is_custom_pricing"] is True

    def test_logged(self, price, captured_logs):
        price()
        [record] = [r for r in captured_logs() if r["message"] == "job_priced"]
        assert record["job_number"] == "J-1"
        assert record["job_created"] is True
        assert record["customer_total"] == "1603.65"

    def test_committed_through_session_scope(self, session_factory, engine, deterministic_clock):
        with session_scope(session_factory) as s:
            PricingService(s, engine, clock=deterministic_clock).price_job(
                job_number="J-2",
                quantity=15000,
                mode=AllocationMode.STANDARD,
                size_key=STANDARD_SIZE,
                actor_id=TEST_ACTOR_ID,
            )

        with session_scope(session_factory) as s:
            job = _job(s, "J-2")
            assert job.customer_total == Decimal("1603.65")
            assert _count(s, PricingAuditEvent) == 1


class TestReprice:

    def test_identical_inputs_write_nothing(self, price, session):
        price()
        again = price()
        assert not again.created
        assert again.changes == ()
        assert not again.written
        assert _count(session, PricingAuditEvent) == 1

    def test_quantity_change(self, price, session):
        price()
        result = price(quantity=20000)
        assert {c.field for c in result.changes} >= {"quantity", "customer_total"}
        job = _job(session)
        assert job.quantity == 20000
        assert job.customer_total == Decimal("2138.20")
        rows = {r.action: r for r in _audit(session)}
        assert set(rows) == {"job_priced", "job_repriced"}
        assert rows["job_repriced"].payload["old"]["quantity"] == 15000
        assert rows["job_repriced"].payload["new"]["quantity"] == 20000

    def test_mode_change(self, price, session):
        price()
        result = price(mode=AllocationMode.INTERMEDIARY_WAIVES_MATERIAL_MARGIN)
        assert "mode" in {c.field for c in result.changes}
        job = _job(session)
        assert job.mode == "INTERMEDIARY_WAIVES_MATERIAL_MARGIN"
        assert job.broker_margin_total == Decimal("164.78")

    def test_override_removed(self, price, session):
        price(overrides=PricingOverrides(print_cpm=Decimal("45.00")))
        result = price()
        assert "print_cpm_override" in {c.field for c in result.changes}
        assert _job(session).print_cpm_override is None

    def test_existing_purchase_orders_updated(self, price, session, create_purchase_order):
        price()
        create_purchase_order(
            _job(session),
            PartyRole.BROKER,
            PartyRole.INTERMEDIARY,
            original_amount=Decimal("1603.65"),
            vendor_amount=Decimal("1492.50"),
        )
        result = price(quantity=20000)
        po_changes = {c.field for c in result.changes if c.entity.startswith("purchase_order:")}
        assert po_changes == {"original_amount", "vendor_amount", "margin_amount"}


class TestQuote:

    def test_baseline_job_has_no_quote(self, price, session):
        price()
        assert _job(session).customer_cpm_override is None

    def test_known_total_stored_as_rate(self, price, session):
        price(known_customer_total=Decimal("1550.00"))
        job = _job(session)
        assert job.customer_total == Decimal("1550.00")
        assert job.customer_cpm_override == job.customer_cpm

    def test_customer_cpm_override_stored(self, price, session):
        price(overrides=PricingOverrides(customer_cpm=Decimal("110.00")))
        job = _job(session)
        assert job.customer_cpm_override == Decimal("110.00")
        assert job.customer_total == Decimal("1650.00")

    def test_quote_dropped_when_repriced_at_baseline(self, price, session):
        price(known_customer_total=Decimal("1550.00"))
        result = price()
        assert "customer_cpm_override" in {c.field for c in result.changes}
        assert _job(session).customer_cpm_override is None

    def test_reconciliation_reproduces_quote(self, price, session_factory, engine):
        price(quantity=15500, known_customer_total=Decimal("1650.01"))
        report = ReconciliationRunner(session_factory, engine).run()
        assert report.fixed == ()
        assert [r.outcome for r in report.skipped] == [RecordOutcome.UNCHANGED]
        assert report.skipped[0].basis is CalculationBasis.QUOTED_CPM


class TestRefusals:

    def test_negative_broker_margin_writes_nothing(self, service, session):
        with pytest.raises(NegativeBrokerMarginError) as exc_info:
            service.price_job(
                job_number="J-1",
                quantity=15000,
                mode=AllocationMode.STANDARD,
                size_key=STANDARD_SIZE,
                known_customer_total=Decimal("1000.00"),
                actor_id=TEST_ACTOR_ID,
            )
        assert exc_info.value.job_number == "J-1"
        session.rollback()
        assert _count(session, JobPricingModel) == 0
        assert _count(session, PricingAuditEvent) == 0

    def test_invalid_quantity(self, service):
        with pytest.raises(InvalidQuantityError):
            service.price_job(
                job_number="J-1",
                quantity=0,
                mode=AllocationMode.STANDARD,
                size_key=STANDARD_SIZE,
                actor_id=TEST_ACTOR_ID,
            )

    def test_unknown_size(self, service):
        with pytest.raises(UnknownSizeError):
            service.price_job(
                job_number="J-1",
                quantity=1000,
                mode=AllocationMode.STANDARD,
                size_key="5 x 7",
                actor_id=TEST_ACTOR_ID,
            )


class TestCustomerInvoice:

    def test_invoice_fixes_total(self, price, session, create_invoice):
        price()
        create_invoice(_job(session), PartyRole.BROKER, PartyRole.CUSTOMER, Decimal("1500.00"))
        result = price()
        assert result.breakdown.customer_total == Decimal("1500.00")
        assert _job(session).broker_margin_total == Decimal("59.33")

    def test_matching_total_accepted(self, price, session, create_invoice):
        price()
        create_invoice(_job(session), PartyRole.BROKER, PartyRole.CUSTOMER, Decimal("1500.00"))
        result = price(known_customer_total=Decimal("1500.00"))
        assert result.breakdown.customer_total == Decimal("1500.00")

    def test_conflicting_total_rejected(self, price, session, create_invoice):
        price()
        create_invoice(_job(session), PartyRole.BROKER, PartyRole.CUSTOMER, Decimal("1500.00"))
        with pytest.raises(InvoiceConflictError):
            price(known_customer_total=Decimal("1600.00"))


class TestRateGridPersistence:

    def test_seed(self, session, pricing_config):
        count = seed_rate_table(session, pricing_config.rates, TEST_ACTOR_ID)
        session.commit()
        assert count == len(pricing_config.rates)
        assert _count(session, RateTableEntryModel) == count
        [row] = _audit(session)
        assert row.action == PricingAuditAction.RATE_TABLE_SEEDED.value
        assert STANDARD_SIZE in row.payload["sizes"]

    def test_seed_is_idempotent(self, session, pricing_config):
        seed_rate_table(session, pricing_config.rates, TEST_ACTOR_ID)
        session.commit()
        assert seed_rate_table(session, pricing_config.rates, TEST_ACTOR_ID) == 0
        session.commit()
        assert _count(session, PricingAuditEvent) == 1

    def test_seed_updates_changed_row(self, session, pricing_config):
        seed_rate_table(session, pricing_config.rates, TEST_ACTOR_ID)
        session.commit()
        row = session.execute(
            select(RateTableEntryModel).where(RateTableEntryModel.size_key == STANDARD_SIZE)
        ).scalar_one()
        row.print_cpm = Decimal("1.00")
        session.commit()

        assert seed_rate_table(session, pricing_config.rates, TEST_ACTOR_ID) == 1
        session.commit()
        assert row.print_cpm == Decimal("49.18")

    def test_load_falls_back_when_empty(self, session, pricing_config):
        table = load_rate_table(session, fallback=pricing_config.rates)
        assert len(table) == len(pricing_config.rates)

    def test_load_from_rows(self, session, pricing_config):
        seed_rate_table(session, pricing_config.rates, TEST_ACTOR_ID)
        session.commit()
        table = load_rate_table(session)
        assert table.require(STANDARD_SIZE).standard_customer_cpm == Decimal("106.91")

    def test_inactive_rows_ignored(self, session, pricing_config):
        seed_rate_table(session, pricing_config.rates, TEST_ACTOR_ID)
        session.commit()
        row = session.execute(
            select(RateTableEntryModel).where(RateTableEntryModel.size_key == STANDARD_SIZE)
        ).scalar_one()
        row.is_active = False
        session.commit()
        table = load_rate_table(session)
        assert STANDARD_SIZE not in table
        assert len(table) == len(pricing_config.rates) - 1
