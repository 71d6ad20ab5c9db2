"""
SLA Engine Module
=================

Bounded Context for service level agreements on citizen complaints and
service applications.

Responsibilities:
- Select the applicable SLA rule for a case
- Compute deadlines, in business hours where the rule requires it
- Escalate cases as the SLA elapses, fire warnings and detect breaches
- Evaluate all open cases periodically
- Report per-rule compliance

The engine never changes a case's business status and never delivers
notifications; it emits events for the notification side to act on.
"""

__version__ = "1.0.0"
