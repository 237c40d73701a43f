"""AI content generation -- scripts, captions, hashtags and ideas for creators.

Provides prompt templates (prompts), the GeneratedContentModel table,
Pydantic schemas, ContentRepository for async CRUD, and ContentGenerator,
which checks quota, calls the LLM, stores the result and counts usage.
"""
