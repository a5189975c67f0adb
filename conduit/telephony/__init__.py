"""
Conduit Telephony — E.164 numbers and multi-carrier SMS.
"""
from conduit.telephony.client import PhoneClient, SmsAdapter, SmsRecord
from conduit.telephony.numbers import is_valid_e164, normalize_phone_number

__all__ = [
    "PhoneClient",
    "SmsAdapter",
    "SmsRecord",
    "is_valid_e164",
    "normalize_phone_number",
]
