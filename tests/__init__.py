"""
Test suite for MediQueue.

Covers authentication, profiles, appointment booking and the live queue.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
