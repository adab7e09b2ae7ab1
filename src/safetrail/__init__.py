"""
SafeTrail - Personal Safety Alerting Client

Emergency orchestration for a personal-safety app: automatic threat detection
with a cancellable grace period, SOS fan-out to trusted contacts, and
evidence-recording bookkeeping.
"""

__version__ = "1.0.0"
__author__ = "SafeTrail Development Team"
