# Routes package init
"""
Neighborhood Hub Backend — API Routes Package
=============================================

Route Inventory:
    - auth.py:          /api/auth/signin/google, /callback/google, /session, /signout
    - onboarding.py:    /api/onboarding, /next, /back, /complete
    - neighborhood.py:  /api/profile, /api/neighborhood/map, /api/geocode, /api/map/config
    - health.py:        /health

Routes stay thin: read the request, call a service, shape the response.
Cookies and redirects are decided here; everything else lives in services.
"""
