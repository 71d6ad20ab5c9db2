"""
Shared Kernel Module
====================

This module contains shared infrastructure used across the application.

Architecture Pattern: Modular Monolith
- The sla package is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add SLA business logic to shared kernel.
"""

__version__ = "1.0.0"
