"""FastAPI REST API for wabridge.

Inbound n8n status webhooks and the vendor-facing WhatsApp endpoints.

Example:
    ```python
    import uvicorn
    from wabridge.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn wabridge.api:app --reload
    ```
"""

from .app import app, create_app
from .router import router

__all__ = [
    "app",
    "create_app",
    "router",
]
