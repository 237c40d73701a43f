"""Campaign marketplace -- brand campaigns and creator applications.

Provides the CampaignModel/CampaignApplicationModel tables, Pydantic
schemas with the marketplace rule errors, and CampaignRepository.
"""
