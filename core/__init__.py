"""
Core package of the Mail Parse Service: application factory, request
authentication and the /parse route. Import ``core.app_state`` for the
FastAPI application.
"""
