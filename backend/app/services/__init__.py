# Services package init
"""
Neighborhood Hub Backend — Services Layer
=========================================

Service Inventory:
    - OnboardingWizard:  three-step form state machine (pure, no I/O)
    - ProfileService:    user_profiles / neighborhoods upserts and lookups
    - AuthService:       Google OAuth code exchange, users upsert, session tokens
    - MapboxGeocoder:    forward geocoding with retry + circuit breaker
    - map_builder:       Mapbox GL sources/layers/camera for a geocoded neighborhood
"""
