"""Microsoft Graph adapters for the sync engine.

Credential provider, HTTP client, and the calendar, conferencing and
transcript providers consumed through the protocols in
``src.meetsync.sync.protocols``.
"""
