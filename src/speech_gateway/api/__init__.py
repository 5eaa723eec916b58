"""
FastAPI REST API Layer for speech-gateway.

    - routes.py: /, /health, /metrics, /voices, /speak
    - schemas.py: Request Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
