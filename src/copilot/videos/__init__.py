"""AI-avatar video -- Tavus job submission and status tracking.

Provides TavusClient for the REST API, VideoStatusPoller for bounded
background status polls, VideoRepository for async CRUD, VideoService for
the submit/refresh/callback flows, and the weekly check-in scripts.
"""
