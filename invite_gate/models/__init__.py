from .invite_code import InviteCode
from .code_usage import CodeUsage
from .registration import Registration

__all__ = ["InviteCode", "CodeUsage", "Registration"]
