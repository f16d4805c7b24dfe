"""
Gestionnaires d'exceptions utilisés par la factory.
- CheckoutError (taxonomie typée): {"error": code, "message": ..., "details"?} + statut associé.
- RequestValidationError (corps pydantic invalide): 400 ValidationError, même format.
- HTTPException (auth, rate limit, routes inconnues): {"detail": ...}.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.checkout.errors import CheckoutError, ValidationError

logger = logging.getLogger(__name__)

def _validation_fields(exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        # loc = ("body", "shippingAddress", ...) -> premier segment utile
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        if loc and loc[0] not in fields:
            fields.append(loc[0])
    return fields

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        else:
            logger.info("%s %s -> %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        err = ValidationError("Corps de requête invalide", fields=_validation_fields(exc))
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
