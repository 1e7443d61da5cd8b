"""
Receipt report helpers: approval status and the shareable summary.
"""

from typing import Optional

from receipt_ocr.verification.receipt_draft import ReceiptDraft, ReceiptStatus, UNKNOWN_VENDOR


def toggle_status(draft: ReceiptDraft) -> ReceiptDraft:
    """Flip Pending <-> Approved. Returns a new draft."""
    new_status = (
        ReceiptStatus.PENDING
        if draft.status == ReceiptStatus.APPROVED
        else ReceiptStatus.APPROVED
    )
    return draft.model_copy(update={"status": new_status.value})


def build_share_message(draft: ReceiptDraft, include_text: bool = False, text_limit: Optional[int] = 500) -> str:
    lines = [
        f"Receipt from {draft.vendor_name or UNKNOWN_VENDOR}",
        f"Date: {draft.date}",
        f"Type: {draft.type}",
        f"Amount: {draft.amount}",
        f"Vehicle: {draft.vehicle}",
    ]
    if draft.location:
        lines.append(f"Location: {draft.location}")
    lines.append(f"Status: {draft.status}")

    if include_text and draft.extracted_text:
        text = draft.extracted_text
        if text_limit is not None and len(text) > text_limit:
            text = text[:text_limit] + "..."
        lines.extend(["", text])

    return "\n".join(lines)
