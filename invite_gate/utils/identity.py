def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_wallet(wallet_address: str) -> str:
    """Hex addresses are case-insensitive; store and key them lower-cased."""
    return wallet_address.strip().lower()
