"""Creator profiles -- account rows, self-service updates, and usage counters.

Provides Pydantic schemas (ProfileRead, ProfileUpdate, UsageSummary) and
ProfileRepository for async CRUD plus atomic usage counter updates.
"""
