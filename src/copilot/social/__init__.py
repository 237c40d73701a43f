"""Social accounts -- OAuth linking per platform and audience analytics.

platforms.py describes each network, oauth.py talks to them, and
SocialService ties linking, metric sync and analytics together.
"""
