"""
Casetrack SLA
=============

SLA deadline and escalation engine for citizen complaints and service
applications.
"""

__version__ = "1.0.0"
