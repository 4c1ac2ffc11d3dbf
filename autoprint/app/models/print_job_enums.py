"""
Print job and document enumerations.
"""

import enum


class PrintJobStatus(str, enum.Enum):
    """
    Print job status enumeration.

    Status flow:
        AWAITING_PAYMENT → QUEUED → PRINTING → COMPLETED | FAILED
        QUEUED ⇄ WAITING_FOR_CONFIRM (operator hold)
        Any non-terminal status can transition to FAILED
    """
    AWAITING_PAYMENT = "awaiting_payment"
    QUEUED = "queued"
    PRINTING = "printing"
    WAITING_FOR_CONFIRM = "waiting_for_confirm"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset({PrintJobStatus.COMPLETED, PrintJobStatus.FAILED})


class ColorMode(str, enum.Enum):
    BLACK_AND_WHITE = "black_and_white"
    COLOR = "color"


class PaperSize(str, enum.Enum):
    A4 = "A4"
    A3 = "A3"
    LETTER = "Letter"
    LEGAL = "Legal"


class Orientation(str, enum.Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
