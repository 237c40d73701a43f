"""Usage limits -- per-tier monthly quotas for paid provider operations.

Provides the tier limit table and limit arithmetic (limits) and
UsageService, which checks a quota before a provider call and records
consumption after it succeeds.
"""
