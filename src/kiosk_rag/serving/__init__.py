"""
Serving: FastAPI application for search and grounded chat.

Run with ``uvicorn kiosk_rag.serving.app:app``.
"""
