"""
Pure domain rules: the component catalog, donor eligibility, shelf-life
arithmetic and phone normalisation. No database involved.
"""

from datetime import date, datetime

import pytest

from app.schemas.base_schema import (
    COMPONENT_CATALOG,
    BloodComponent,
    BloodType,
    ExpiryBucket,
    UnitStatus,
    list_components,
)
from app.utils import eligibility, expiry
from app.utils.exceptions import (
    ConflictError,
    ExpiredResourceError,
    IneligibleError,
    NotFoundError,
    ValidationError,
)
from app.utils.phone import mask_phone, normalize_phone, phone_lookup_candidates


class TestComponentCatalog:
    """The seven component kinds and their shelf lives."""

    @pytest.mark.parametrize(
        "component,shelf_life",
        [
            (BloodComponent.WHOLE_BLOOD, 35),
            (BloodComponent.PRBC, 35),
            (BloodComponent.PRBC_SAGM, 42),
            (BloodComponent.FFP, 365),
            (BloodComponent.PLATELETS_RDP, 5),
            (BloodComponent.SDP, 5),
            (BloodComponent.CRYO, 365),
        ],
    )
    def test_shelf_life(self, component, shelf_life):
        assert component.shelf_life_days == shelf_life

    def test_every_component_is_listed(self):
        listed = list_components()
        assert len(listed) == len(COMPONENT_CATALOG) == 7
        codes = {item["code"] for item in listed}
        assert codes == {component.value for component in BloodComponent}
        sagm = next(item for item in listed if item["code"] == "PRBC_SAGM")
        assert sagm == {"code": "PRBC_SAGM", "name": "Packed RBC (SAGM)", "shelf_life_days": 42}

    def test_parse_is_case_insensitive(self):
        assert BloodComponent.parse(" platelets_rdp ") == BloodComponent.PLATELETS_RDP
        assert BloodComponent.parse(BloodComponent.FFP) == BloodComponent.FFP

    @pytest.mark.parametrize("raw", ["PLASMA", "", None, 42])
    def test_parse_unknown_component(self, raw):
        assert BloodComponent.parse(raw) is None

    def test_unit_status_parse(self):
        assert UnitStatus.parse("reserved") == UnitStatus.RESERVED
        assert UnitStatus.parse("LOST") is None


class TestBloodType:
    def test_normalize_valid(self):
        assert BloodType.normalize(" ab- ") == "AB-"

    @pytest.mark.parametrize("raw", ["Z+", "A++", "", "O positive", None])
    def test_normalize_invalid(self, raw):
        assert BloodType.normalize(raw) is None


class TestEligibility:
    """A donor may give again once 90 days have passed since the last donation."""

    def test_never_donated_is_eligible(self):
        assert eligibility.is_eligible(None, date(2024, 3, 1)) is True
        assert eligibility.days_until_eligible(None, date(2024, 3, 1)) == 0
        assert eligibility.next_eligible_date(None) is None

    def test_eligible_on_day_ninety(self):
        last = date(2024, 1, 1)
        assert eligibility.days_since(last, date(2024, 3, 31)) == 90
        assert eligibility.is_eligible(last, date(2024, 3, 31)) is True
        assert eligibility.days_until_eligible(last, date(2024, 3, 31)) == 0

    def test_not_eligible_on_day_eighty_nine(self):
        last = date(2024, 1, 1)
        assert eligibility.is_eligible(last, date(2024, 3, 30)) is False
        assert eligibility.days_until_eligible(last, date(2024, 3, 30)) == 1

    def test_next_eligible_date(self):
        assert eligibility.next_eligible_date(date(2024, 1, 1)) == date(2024, 3, 31)

    def test_custom_gap(self):
        assert eligibility.is_eligible(date(2024, 1, 1), date(2024, 1, 11), gap_days=10)

    def test_cutoff(self):
        assert eligibility.eligibility_cutoff(date(2024, 3, 31)) == date(2024, 1, 1)


class TestExpiryArithmetic:
    """Platelets collected on 2024-01-01 expire on 2024-01-06."""

    EXPIRY = date(2024, 1, 6)

    def test_days_until(self):
        assert expiry.days_until(self.EXPIRY, date(2024, 1, 4)) == 2

    def test_hours_until_end_of_expiry_day(self):
        assert expiry.hours_until_end_of_day(self.EXPIRY, datetime(2024, 1, 4, 12, 0)) == 60

    def test_hours_never_negative(self):
        assert expiry.hours_until_end_of_day(self.EXPIRY, datetime(2024, 1, 9, 8, 0)) == 0

    @pytest.mark.parametrize(
        "today,bucket",
        [
            (date(2024, 1, 7), ExpiryBucket.EXPIRED),
            (date(2024, 1, 6), ExpiryBucket.CRITICAL),
            (date(2024, 1, 3), ExpiryBucket.CRITICAL),
            (date(2024, 1, 2), ExpiryBucket.WARNING),
            (date(2023, 12, 30), ExpiryBucket.WARNING),
            (date(2023, 12, 29), ExpiryBucket.GOOD),
        ],
    )
    def test_buckets(self, today, bucket):
        assert expiry.expiry_bucket(self.EXPIRY, today) == bucket

    def test_expired_only_after_expiry_day(self):
        assert expiry.is_expired(self.EXPIRY, date(2024, 1, 6)) is False
        assert expiry.is_expired(self.EXPIRY, date(2024, 1, 7)) is True


class TestPhoneNumbers:
    def test_ten_digit_numbers_get_country_code(self):
        assert normalize_phone("98765 43210") == "919876543210"
        assert normalize_phone("+91-98765-43210") == "919876543210"

    def test_other_lengths_are_only_stripped(self):
        assert normalize_phone("+1 (415) 555-0100 9") == "141555501009"
        assert normalize_phone(None) is None

    def test_lookup_candidates_cover_both_formats(self):
        assert phone_lookup_candidates("9876543210") == ["919876543210", "9876543210"]
        assert phone_lookup_candidates("919876543210") == ["919876543210", "9876543210"]

    def test_local_number_starting_with_country_code_digits(self):
        # stored as 91 + 9123456789
        assert phone_lookup_candidates("9123456789")[0] == "919123456789"

    def test_mask(self):
        assert mask_phone("919876543210") == "****3210"
        assert mask_phone(None) == "****"


class TestDomainErrors:
    @pytest.mark.parametrize(
        "error_class,kind,status_code",
        [
            (ValidationError, "validation_error", 400),
            (NotFoundError, "not_found", 404),
            (ConflictError, "conflict", 409),
            (IneligibleError, "ineligible", 422),
            (ExpiredResourceError, "expired", 410),
        ],
    )
    def test_kind_and_status(self, error_class, kind, status_code):
        error = error_class("boom")
        assert error.kind == kind
        assert error.status_code == status_code

    def test_details_are_rendered(self):
        error = IneligibleError("Not yet", days_remaining=12)
        assert error.to_dict() == {
            "success": False,
            "error": "ineligible",
            "message": "Not yet",
            "days_remaining": 12,
        }
