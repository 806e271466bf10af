"""Tests for the provider resilience layer."""
