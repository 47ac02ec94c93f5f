# Routers for invite code checks, creation and redemption
import logging

from fastapi import APIRouter, Depends, Request, status

from invite_gate.common import get_invite_service, get_reservation_coordinator, raise_for_result
from invite_gate.schemas.invite_code import InviteCodeCreate, InviteCodeResponse, InviteCodeStats
from invite_gate.schemas.registration import AvailabilityResponse, ReservationResponse, ReserveInviteRequest
from invite_gate.services import InviteCodeService, ReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["invite-codes"])


@router.get("/verifyCode", response_model=AvailabilityResponse, response_model_exclude_none=True)
async def verify_code(code: str, invite_service: InviteCodeService = Depends(get_invite_service)):
    result = await invite_service.verify_invite_code(code)
    raise_for_result(result)
    if not result.value:
        return AvailabilityResponse(success=False, message="Code is invalid or already used")
    return AvailabilityResponse(success=True)


@router.get("/isEmailUsed", response_model=AvailabilityResponse, response_model_exclude_none=True)
async def check_email(email: str, invite_service: InviteCodeService = Depends(get_invite_service)):
    result = await invite_service.is_email_used(email)
    raise_for_result(result)
    if result.value:
        return AvailabilityResponse(success=False, message="Email already used")
    return AvailabilityResponse(success=True)


@router.get("/isWalletUsed", response_model=AvailabilityResponse, response_model_exclude_none=True)
async def check_wallet(wallet: str, invite_service: InviteCodeService = Depends(get_invite_service)):
    result = await invite_service.is_wallet_used(wallet)
    raise_for_result(result)
    if result.value:
        return AvailabilityResponse(success=False, message="Wallet already used")
    return AvailabilityResponse(success=True)


@router.post("/reserve", response_model=ReservationResponse)
async def reserve(
    payload: ReserveInviteRequest,
    request: Request,
    coordinator: ReservationCoordinator = Depends(get_reservation_coordinator)
):
    """
    Redeem an invite code for an email and wallet.

    The wallet must have signed "Register with invite code: <code>".
    """
    result = await coordinator.reserve_by_code(
        code=payload.code,
        email=payload.email,
        wallet_address=payload.wallet_address,
        signature=payload.signature,
        ip_address=request.client.host if request.client else None,
        device_info={"userAgent": request.headers.get("user-agent")}
    )
    raise_for_result(result)
    return ReservationResponse(registration_id=result.value)


@router.post("/invite-codes", response_model=InviteCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_invite_code(
    payload: InviteCodeCreate,
    invite_service: InviteCodeService = Depends(get_invite_service)
):
    result = await invite_service.create_invite_code(payload.creator_email, payload.max_uses)
    raise_for_result(result)
    return InviteCodeResponse.model_validate(result.value)


@router.get("/invite-codes/{code}/stats", response_model=InviteCodeStats)
async def get_invite_code_stats(code: str, invite_service: InviteCodeService = Depends(get_invite_service)):
    result = await invite_service.get_invite_code_stats(code)
    raise_for_result(result)
    return result.value
