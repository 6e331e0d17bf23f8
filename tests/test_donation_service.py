"""
Two-step donation intake: recording a donation, turning it into units exactly
once, and the one-shot variant.
"""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.db.base import Base
from app.models import BloodBank, BloodUnit
from app.schemas.base_schema import BloodComponent
from app.services.donation_service import DonationService
from app.utils.exceptions import (
    ConflictError,
    IneligibleError,
    NotFoundError,
    ValidationError,
)

DONATED = date(2024, 3, 31)


class TestRecordDonation:
    async def test_walk_in_donor_is_registered(self, db_session, factory):
        bank = await factory.bank(city="Pune")
        service = DonationService(db_session)

        donation = await service.record_donation(
            bank.id,
            phone="98765 43210",
            donation_date=DONATED,
            blood_type="b+",
            donor_name="Asha",
            donor_date_of_birth=date(1990, 5, 1),
            today=DONATED,
        )

        assert donation.components_added is False
        assert donation.blood_bank_id == bank.id
        donor = donation.donor
        assert donor.name == "Asha"
        assert donor.phone == "919876543210"
        assert donor.blood_type == "B+"
        assert donor.city == "Pune"
        assert donor.is_verified is False
        assert donor.last_donation_date == DONATED

    async def test_walk_in_donor_needs_details(self, db_session, factory):
        bank = await factory.bank()
        with pytest.raises(ValidationError):
            await DonationService(db_session).record_donation(
                bank.id, phone="9876543210", donation_date=DONATED, today=DONATED
            )

    async def test_eligible_after_ninety_days(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor(last_donation_date=date(2024, 1, 1))

        donation = await DonationService(db_session).record_donation(
            bank.id, phone=donor.phone, donation_date=DONATED, today=DONATED
        )

        assert donation.donor_id == donor.id
        assert donation.donor.last_donation_date == DONATED

    async def test_ineligible_at_eighty_nine_days(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor(last_donation_date=date(2024, 1, 1))

        with pytest.raises(IneligibleError) as exc_info:
            await DonationService(db_session).record_donation(
                bank.id,
                phone=donor.phone,
                donation_date=date(2024, 3, 30),
                today=date(2024, 3, 30),
            )

        assert exc_info.value.details["days_remaining"] == 1

    async def test_known_donor_found_by_local_number(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor(phone="9822012345")

        donation = await DonationService(db_session).record_donation(
            bank.id, phone="98220 12345", donation_date=DONATED, today=DONATED
        )

        assert donation.donor_id == donor.id

    async def test_backdated_donation_keeps_latest_date(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor(last_donation_date=date(2024, 1, 1))

        donation = await DonationService(db_session).record_donation(
            bank.id, phone=donor.phone, donation_date=date(2023, 12, 1), today=DONATED
        )

        assert donation.donation_date == date(2023, 12, 1)
        assert donation.donor.last_donation_date == date(2024, 1, 1)

    async def test_future_date_rejected(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor()
        with pytest.raises(ValidationError):
            await DonationService(db_session).record_donation(
                bank.id, phone=donor.phone, donation_date=date(2024, 4, 2), today=date(2024, 4, 1)
            )

    async def test_unknown_bank(self, db_session, factory):
        donor = await factory.donor()
        with pytest.raises(NotFoundError):
            await DonationService(db_session).record_donation(
                uuid4(), phone=donor.phone, donation_date=DONATED, today=DONATED
            )


class TestAddComponents:
    async def _pending_donation(self, db_session, factory, blood_type="AB-"):
        bank = await factory.bank()
        donor = await factory.donor(blood_type=blood_type)
        donation = await DonationService(db_session).record_donation(
            bank.id, phone=donor.phone, donation_date=DONATED, today=DONATED
        )
        return bank, donation

    async def test_one_unit_per_component(self, db_session, factory):
        bank, donation = await self._pending_donation(db_session, factory)
        service = DonationService(db_session)

        units = await service.add_components(
            bank.id, donation.id, ["prbc_sagm", "FFP", "PLATELETS_RDP"]
        )

        assert [unit.unit_number for unit in units] == ["001", "002", "003"]
        assert [unit.component for unit in units] == [
            BloodComponent.PRBC_SAGM,
            BloodComponent.FFP,
            BloodComponent.PLATELETS_RDP,
        ]
        assert all(unit.blood_type == "AB-" for unit in units)
        assert all(unit.collection_date == DONATED for unit in units)
        assert all(unit.donor_id == donation.donor_id for unit in units)
        assert units[2].expiry_date == date(2024, 4, 5)

        finalized = await service.get_donation(donation.id)
        assert finalized.components_added is True
        assert await service.list_pending_donations(bank.id) == []

    async def test_second_submission_conflicts(self, db_session, factory):
        bank, donation = await self._pending_donation(db_session, factory)
        service = DonationService(db_session)
        await service.add_components(bank.id, donation.id, ["FFP"])

        with pytest.raises(ConflictError):
            await service.add_components(bank.id, donation.id, ["CRYO"])

        count = await db_session.scalar(select(func.count(BloodUnit.id)))
        assert count == 1

    @pytest.mark.parametrize("components", [[], ["FFP", "PLASMA"]])
    async def test_invalid_components(self, db_session, factory, components):
        bank, donation = await self._pending_donation(db_session, factory)
        with pytest.raises(ValidationError):
            await DonationService(db_session).add_components(bank.id, donation.id, components)

    async def test_donation_of_another_bank(self, db_session, factory):
        _, donation = await self._pending_donation(db_session, factory)
        other_bank = await factory.bank()
        with pytest.raises(NotFoundError):
            await DonationService(db_session).add_components(other_bank.id, donation.id, ["FFP"])

    async def test_unknown_donation(self, db_session, factory):
        bank = await factory.bank()
        with pytest.raises(NotFoundError):
            await DonationService(db_session).add_components(bank.id, uuid4(), ["FFP"])


async def test_stale_session_cannot_finalize_twice(tmp_path):
    """Two clerks load the same pending donation; only the first submission creates units."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'intake.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_maker() as setup:
            bank = BloodBank(name="Race Bank", city="Pune")
            setup.add(bank)
            await setup.commit()
            donation = await DonationService(setup).record_donation(
                bank.id,
                phone="9811122233",
                donation_date=DONATED,
                blood_type="O-",
                donor_name="Meera",
                donor_date_of_birth=date(1988, 2, 2),
                today=DONATED,
            )
            bank_id, donation_id = bank.id, donation.id

        async with session_maker() as first_clerk, session_maker() as second_clerk:
            stale = await DonationService(first_clerk).get_donation(donation_id)
            assert stale.components_added is False

            units = await DonationService(second_clerk).add_components(
                bank_id, donation_id, ["FFP"]
            )
            assert len(units) == 1

            with pytest.raises(ConflictError):
                await DonationService(first_clerk).add_components(
                    bank_id, donation_id, ["FFP", "CRYO"]
                )

        async with session_maker() as check:
            count = await check.scalar(select(func.count(BloodUnit.id)))
            assert count == 1
    finally:
        await engine.dispose()


class TestRecordDonationWithComponents:
    async def test_both_steps_at_once(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor(blood_type="A+")

        donation, units = await DonationService(db_session).record_donation_with_components(
            bank.id,
            phone=donor.phone,
            donation_date=DONATED,
            components=["WHOLE_BLOOD"],
            today=DONATED,
        )

        assert donation.components_added is True
        assert len(units) == 1
        assert units[0].expiry_date == date(2024, 5, 5)

    async def test_nothing_saved_when_components_invalid(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor()
        service = DonationService(db_session)

        with pytest.raises(ValidationError):
            await service.record_donation_with_components(
                bank.id, phone=donor.phone, donation_date=DONATED, components=[], today=DONATED
            )

        assert await service.get_donation_history(donor.id) == []


class TestDonorQueries:
    async def test_lookup_by_any_format(self, db_session, factory):
        donor = await factory.donor(phone="9876501234")
        service = DonationService(db_session)

        assert (await service.lookup_donor("9876501234")).id == donor.id
        assert (await service.lookup_donor("+91 98765 01234")).id == donor.id
        assert await service.lookup_donor("9000000000") is None

    async def test_lookup_local_number_beginning_with_91(self, db_session, factory):
        bank = await factory.bank()
        service = DonationService(db_session)
        await service.record_donation(
            bank.id,
            phone="9123456789",
            donation_date=DONATED,
            blood_type="A+",
            donor_name="Ravi",
            donor_date_of_birth=date(1992, 8, 14),
            today=DONATED,
        )

        donor = await service.lookup_donor("9123456789")

        assert donor is not None
        assert donor.phone == "919123456789"
        assert (await service.lookup_donor("+91 91234 56789")).id == donor.id

    async def test_history_newest_first(self, db_session, factory):
        bank = await factory.bank()
        donor = await factory.donor()
        service = DonationService(db_session)
        await service.record_donation(
            bank.id, phone=donor.phone, donation_date=date(2023, 6, 1), today=date(2023, 6, 1)
        )
        await service.record_donation(
            bank.id, phone=donor.phone, donation_date=DONATED, today=DONATED
        )

        history = await service.get_donation_history(donor.id)

        assert [donation.donation_date for donation in history] == [DONATED, date(2023, 6, 1)]
        assert len(await service.list_pending_donations(bank.id)) == 2

    async def test_history_of_unknown_donor(self, db_session):
        with pytest.raises(NotFoundError):
            await DonationService(db_session).get_donation_history(uuid4())
