from .blood_bank import BloodBank
from .donor import Donor
from .blood_unit import BloodUnit
from .inventory import BloodInventory
from .donation import Donation
from .donor_request import DonorRequest
from .reservation import Reservation
