"""Mailbox sync: Gmail access, booking extraction and the sync engine."""
