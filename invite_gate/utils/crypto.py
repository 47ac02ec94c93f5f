import secrets
import string

# Uppercase letters and digits, as printed on invite cards
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 8


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    """
    Generates a random invitation code of specified length.

    Args:
        length (int): Length of the invitation code (default: 8)

    Returns:
        str: Random invitation code containing uppercase letters and digits
    """
    return ''.join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))
