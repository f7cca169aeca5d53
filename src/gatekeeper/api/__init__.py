# Gatekeeper HTTP API layer
# Created: 2026-10-19
#
# FastAPI routers for the OAuth2 token and authorization endpoints, mounted
# at /api/v1/ by create_api_app().
