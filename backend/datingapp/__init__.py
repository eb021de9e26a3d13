"""Dating app backend.

The FastAPI app lives in `main`; business rules in `services` sit on top
of the repositories and unit of work in `repositories`.
"""
