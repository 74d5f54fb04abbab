# Presentation Layer
# ==================
# FastAPI JSON API (app.py). Build with create_app(container) in tests;
# main.py serves the module-level `app` with uvicorn.
