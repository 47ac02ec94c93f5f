import logging

from fastapi import APIRouter, Depends, Query

from invite_gate.common import get_eligibility_oracle, get_reservation_coordinator, raise_for_result
from invite_gate.schemas.eligibility import EligibilityStatus
from invite_gate.schemas.registration import WALLET_PATTERN, RegisterNftRequest, ReservationResponse
from invite_gate.services import EligibilityOracle, ReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/nft", tags=["nft"])


@router.post("/register", response_model=ReservationResponse)
async def register_with_nft(
    payload: RegisterNftRequest,
    coordinator: ReservationCoordinator = Depends(get_reservation_coordinator)
):
    """
    Register an email and wallet by proving a staked NFT.

    The wallet must have signed "Register with NFT token ID: <tokenId>".
    """
    result = await coordinator.reserve_by_nft(
        email=payload.email,
        wallet_address=payload.wallet_address,
        token_id=payload.token_id,
        signature=payload.signature
    )
    raise_for_result(result)
    return ReservationResponse(registration_id=result.value)


@router.get("/eligibility", response_model=EligibilityStatus, response_model_exclude_none=True)
async def check_eligibility(
    token_id: int = Query(alias="tokenId", ge=0),
    wallet_address: str = Query(alias="walletAddress", pattern=WALLET_PATTERN),
    oracle: EligibilityOracle = Depends(get_eligibility_oracle)
):
    result = await oracle.check_eligibility(token_id, wallet_address)
    raise_for_result(result)
    return result.value
