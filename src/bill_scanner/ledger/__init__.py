"""Idempotency ledger of processed mailbox messages."""

from bill_scanner.ledger.repository import ProcessedMessageLedger

__all__ = ["ProcessedMessageLedger"]
