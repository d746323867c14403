"""Tutor Market Service - students post tasks, tutors bid, accepted bids become payments."""

__version__ = "0.1.0"
