"""Integration tests for keydrop.

These drive the HTTP routes end to end over one runtime backed by
fakeredis and a file-backed SQLite ledger.

Test Organization:
- test_claim_flow.py: refill, concurrent claims, concurrent redemptions
"""
