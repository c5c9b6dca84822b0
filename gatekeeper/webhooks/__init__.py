"""Webhook inbound system.

Receives Lemon Squeezy (signed JSON) and Gumroad (token-gated form) webhooks,
turns each into a grant/revoke/no-op decision for a GitHub handle, and
applies it to the repository's collaborator list.
"""
