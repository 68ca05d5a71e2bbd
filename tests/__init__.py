# SecureComm Test Suite
"""
Unit, property and end-to-end tests for the crypto core.

Run with: pytest
Coverage: pytest --cov=securecomm
"""
