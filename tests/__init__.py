"""Tests for relay search components.

Every test runs in-process against the memory index store or small fakes;
no database or semantic service is required.
"""
