from config import FEES_RECEIPT_PADDING


def generate_receipt_number(prefix: str, sequence: int, padding: int = FEES_RECEIPT_PADDING) -> str:
    """
    Format a receipt number as the prefix followed by the zero-padded sequence.

    Example: RCP000042
    """
    return f"{prefix or ''}{str(sequence).zfill(padding)}"
