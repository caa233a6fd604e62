"""
FastAPI REST API Layer for PodCraft.

    - routes.py: Speaker, PDF, podcast, profile, health and metrics endpoints
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
