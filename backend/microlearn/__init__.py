"""Application package for the micro-learning backend.

This package exposes the service, repository and model modules used by
the FastAPI application: the quiz answer validator, the lesson
progress/streak tracker and the supporting catalog, bookmark, profile,
assessment and recommendation endpoints.
"""
