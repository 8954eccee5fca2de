"""
Tests for the fulfillment engine.

Unit tests live in tests/unit/ and run against InMemoryRepository or a
mocked Supabase client. test_end_to_end_fulfillment.py drives the HTTP API.
"""
