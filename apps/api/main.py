"""Thin API launcher.

This is the uvicorn entrypoint. All application logic lives in the courier package.
Run with: uvicorn main:app --reload

The app instance is created here (not in courier.app) so importing
create_app in tests doesn't require AUTH_* settings to point at a live
identity provider.
"""

from courier.app import add_request_id_middleware, create_app

app = create_app()
# Request-id middleware goes on LAST so it runs FIRST (outermost)
add_request_id_middleware(app)

__all__ = ["app"]
