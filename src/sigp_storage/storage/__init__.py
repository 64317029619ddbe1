"""Presigned-upload lifecycle: ledger, coordinator, reconciler."""
