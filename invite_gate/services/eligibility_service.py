import asyncio
import logging
import time
from typing import Optional

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from invite_gate.core.cache import CacheAside
from invite_gate.core.results import ReservationError, Result
from invite_gate.schemas.eligibility import EligibilityStatus, StakeInfo

# Configure logging
logger = logging.getLogger(__name__)

# stakes(uint256) returns (bool isStaked, uint256 timestamp)
STAKES_SELECTOR = function_signature_to_4byte_selector("stakes(uint256)")
# meetsStakingRequirement(uint256) returns (bool)
MEETS_REQUIREMENT_SELECTOR = function_signature_to_4byte_selector("meetsStakingRequirement(uint256)")

REQUIRED_STAKE_SECONDS = 7 * 24 * 60 * 60


class StakingProviderError(Exception):
    """The RPC node answered, but not with a usable contract result."""


class StakingContractClient:
    """
    Read-only access to the NFT staking contract through JSON-RPC eth_call.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.timeout = timeout
        self.transport = transport

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    async def _eth_call(self, data: bytes) -> bytes:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_call",
            "params": [{"to": self.contract_address, "data": "0x" + data.hex()}, "latest"]
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.rpc_url, json=payload)
            response.raise_for_status()

        body = response.json()
        if not isinstance(body, dict):
            raise StakingProviderError(f"eth_call returned a malformed response: {body!r}")
        if body.get("error"):
            raise StakingProviderError(f"eth_call failed: {body['error']}")
        result = body.get("result")
        if not result or result == "0x":
            raise StakingProviderError("eth_call returned no data")
        if not isinstance(result, str):
            raise StakingProviderError(f"eth_call returned a non-hex result: {result!r}")
        return bytes.fromhex(result[2:] if result.startswith("0x") else result)

    async def stakes(self, token_id: int) -> StakeInfo:
        raw = await self._eth_call(STAKES_SELECTOR + encode(["uint256"], [token_id]))
        is_staked, timestamp = decode(["bool", "uint256"], raw)
        return StakeInfo(is_staked=is_staked, timestamp=timestamp)

    async def meets_staking_requirement(self, token_id: int) -> bool:
        """The contract's own verdict on whether the token has been staked long enough."""
        raw = await self._eth_call(MEETS_REQUIREMENT_SELECTOR + encode(["uint256"], [token_id]))
        (meets,) = decode(["bool"], raw)
        return meets


class EligibilityOracle:
    """
    Answers whether a token has been staked long enough to register.

    Computed answers are cached briefly per token and wallet. A provider
    error or timeout is reported as ELIGIBILITY_CHECK_FAILED, never as
    "not eligible".
    """

    def __init__(
        self,
        provider,
        cache: CacheAside,
        required_stake_seconds: int = REQUIRED_STAKE_SECONDS,
        timeout: float = 10.0,
        clock=time.time
    ):
        self.provider = provider
        self.cache = cache
        self.required_stake_seconds = required_stake_seconds
        self.timeout = timeout
        self.clock = clock

    async def check_eligibility(self, token_id: int, wallet_address: str) -> Result[EligibilityStatus]:
        cache_key = self.cache.eligibility_key(token_id, wallet_address.lower())
        cached = await self.cache.lookup(cache_key)
        if cached is not None:
            try:
                return Result.success(EligibilityStatus.model_validate(cached))
            except ValidationError:
                logger.warning(f"Ignoring malformed eligibility cache entry {cache_key}")

        try:
            stake = await asyncio.wait_for(self.provider.stakes(token_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Staking contract call timed out for token {token_id}")
            return Result.failure(ReservationError.ELIGIBILITY_CHECK_FAILED, "Staking contract call timed out")
        except (httpx.HTTPError, StakingProviderError, DecodingError, ValueError) as e:
            logger.error(f"Error checking token eligibility for token {token_id}: {e}")
            return Result.failure(ReservationError.ELIGIBILITY_CHECK_FAILED)

        status = self.evaluate(stake)
        await self.cache.store(cache_key, status.model_dump(), self.cache.eligibility_ttl)
        return Result.success(status)

    def evaluate(self, stake: StakeInfo) -> EligibilityStatus:
        elapsed = int(self.clock()) - stake.timestamp
        remaining_time = max(0, self.required_stake_seconds - elapsed)
        return EligibilityStatus(
            is_eligible=stake.is_staked and remaining_time == 0,
            remaining_time=remaining_time if stake.is_staked else None
        )
