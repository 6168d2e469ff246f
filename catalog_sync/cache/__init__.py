"""Versioned product cache, audit trail, sync cursors and raw supplier catalog."""
