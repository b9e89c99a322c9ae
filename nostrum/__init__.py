"""nostrum: a Nostr client library.

Signed events, NIP-13 proof of work, and a multi-relay client.
"""
