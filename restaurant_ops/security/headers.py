from fastapi import FastAPI, Request
from starlette.responses import Response


ROBOTS_HEADER = "noindex, nofollow, noarchive"
HSTS_HEADER = "max-age=31536000; includeSubDomains"

API_HEADERS = {
    "X-Robots-Tag": ROBOTS_HEADER,
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "same-origin",
    "X-Frame-Options": "DENY",
}


def install_security_headers(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers.update(API_HEADERS)
        # Session and PIN responses are never cached.
        response.headers.setdefault("Cache-Control", "no-store")
        if request.app.state.settings.is_production:
            response.headers["Strict-Transport-Security"] = HSTS_HEADER
        return response
