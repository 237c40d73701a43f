"""Voiceovers -- ElevenLabs text-to-speech jobs with stored MP3 output.

Provides ElevenLabsClient for the REST API, the VoiceoverModel table,
VoiceoverRepository for async CRUD, and VoiceoverService, which meters
voiceover minutes, synthesizes, stores the audio and records usage.
"""
