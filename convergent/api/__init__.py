"""
HTTP surface — FastAPI app over the order service.

    from convergent.api import create_app

    app = create_app(Settings.from_env())

Routes:

    POST /api/orders                     Idempotency-Key header optional
    GET  /api/orders/{order_id}
    GET  /api/orders?customerId=…  |  ?status=…
"""

from convergent.api._schemas import (
    IDEMPOTENCY_KEY_HEADER,
    MAX_KEY_LENGTH,
    is_valid_key,
    CreateOrderBody,
    OrderResponse,
    ErrorBody,
)
from convergent.api._routes import router
from convergent.api._app import (
    Components,
    ComponentsFactory,
    build_components,
    policy_from,
    create_app,
)

__all__ = (
    # Schemas
    "IDEMPOTENCY_KEY_HEADER",
    "MAX_KEY_LENGTH",
    "is_valid_key",
    "CreateOrderBody",
    "OrderResponse",
    "ErrorBody",
    # Routes
    "router",
    # App
    "Components",
    "ComponentsFactory",
    "build_components",
    "policy_from",
    "create_app",
)
