"""
Test suite for the Clinic Scheduling API.

Covers the authorization gates, tenant isolation, the appointment lifecycle
and patient linking/visibility rules.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
