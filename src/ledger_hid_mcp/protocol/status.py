"""Status words returned in the last two bytes of every APDU response."""

from __future__ import annotations

from enum import IntEnum


class StatusCodes(IntEnum):
    """Known ISO 7816 / Ledger status words."""

    NOT_ENOUGH_SPACE = 0x5102
    USER_REFUSED_ON_DEVICE = 0x5501
    LOCKED_DEVICE = 0x5515
    GP_AUTH_FAILED = 0x6300
    PIN_REMAINING_ATTEMPTS = 0x63C0
    DEVICE_NOT_ONBOARDED_2 = 0x6611
    CUSTOM_IMAGE_EMPTY = 0x662E
    CUSTOM_IMAGE_BOOTLOADER = 0x662F
    INCORRECT_LENGTH = 0x6700
    MISSING_CRITICAL_PARAMETER = 0x6800
    COMMAND_INCOMPATIBLE_FILE_STRUCTURE = 0x6981
    SECURITY_STATUS_NOT_SATISFIED = 0x6982
    CONDITIONS_OF_USE_NOT_SATISFIED = 0x6985
    INCORRECT_DATA = 0x6A80
    NOT_ENOUGH_MEMORY_SPACE = 0x6A84
    REFERENCED_DATA_NOT_FOUND = 0x6A88
    FILE_ALREADY_EXISTS = 0x6A89
    INCORRECT_P1_P2 = 0x6B00
    INS_NOT_SUPPORTED = 0x6D00
    UNKNOWN_APDU = 0x6D02
    DEVICE_NOT_ONBOARDED = 0x6D07
    CLA_NOT_SUPPORTED = 0x6E00
    TECHNICAL_PROBLEM = 0x6F00
    LICENSING = 0x6F42
    HALTED = 0x6FAA
    OK = 0x9000
    MEMORY_PROBLEM = 0x9240
    NO_EF_SELECTED = 0x9400
    INVALID_OFFSET = 0x9402
    FILE_NOT_FOUND = 0x9404
    INCONSISTENT_FILE = 0x9408
    ALGORITHM_NOT_SUPPORTED = 0x9484
    INVALID_KCV = 0x9485
    CODE_NOT_INITIALIZED = 0x9802
    ACCESS_CONDITION_NOT_FULFILLED = 0x9804
    CONTRADICTION_SECRET_CODE_STATUS = 0x9808
    CONTRADICTION_INVALIDATION = 0x9810
    CODE_BLOCKED = 0x9840
    MAX_VALUE_REACHED = 0x9850


_BY_VALUE: dict[int, StatusCodes] = {code.value: code for code in StatusCodes}


def status_label(code: int) -> str:
    """Return the symbolic name of a status word, or its hex form if unknown."""
    status = _BY_VALUE.get(code)
    if status is None:
        return f"0x{code:04x}"
    return status.name


def describe_status(code: int) -> str:
    """Build the human-readable message used for rejected status words.

    >>> describe_status(0x6985)
    'Error status code: CONDITIONS_OF_USE_NOT_SATISFIED / 27013 / 0x6985'
    """
    status = _BY_VALUE.get(code)
    by_name = f"{status.name} / " if status is not None else ""
    return f"Error status code: {by_name}{code} / 0x{code:04x}"
