"""API package - FastAPI HTTP boundary.

Modules:
    - app: Application factory and error mapping
    - routes: Feedback and scheduling endpoints
    - schemas: Request/response bodies (camelCase on the wire)
"""
