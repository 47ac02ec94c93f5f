import logging

from eth_account import Account
from eth_account.messages import encode_defunct

logger = logging.getLogger(__name__)


def code_registration_message(code: str) -> str:
    return f"Register with invite code: {code}"


def nft_registration_message(token_id: int) -> str:
    return f"Register with NFT token ID: {token_id}"


class SignatureVerifier:
    """
    Checks that a personal_sign (EIP-191) signature over a message was made
    by the claimed wallet.
    """

    def recover_signer(self, message: str, signature: str) -> str:
        return Account.recover_message(encode_defunct(text=message), signature=signature)

    def verify(self, message: str, signature: str, claimed_address: str) -> bool:
        """
        Args:
            message: The action-scoped message the wallet was asked to sign
            signature: Hex encoded 65-byte signature
            claimed_address: Wallet address the caller says signed the message

        Returns:
            bool: True only if the recovered signer matches claimed_address
        """
        if not signature or not claimed_address:
            return False
        try:
            signer = self.recover_signer(message, signature)
        except Exception as e:
            # Malformed hex, wrong length, invalid v/r/s all land here
            logger.info(f"Signature recovery failed: {e}")
            return False

        if signer.lower() != claimed_address.lower():
            logger.info(f"Signature mismatch: recovered {signer}, claimed {claimed_address}")
            return False
        return True
