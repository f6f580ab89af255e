"""
Startup sanity checks (fail-fast).

Lightweight runtime checks that validate the target database during FastAPI startup.
"""
