from .eligibility_service import EligibilityOracle, StakingContractClient
from .invite_code_service import InviteCodeService
from .repository import ReservationStore
from .reservation_service import ReservationCoordinator
from .signature_service import SignatureVerifier, code_registration_message, nft_registration_message

__all__ = ["EligibilityOracle", "StakingContractClient", "InviteCodeService", "ReservationStore", "ReservationCoordinator", "SignatureVerifier", "code_registration_message", "nft_registration_message"]
