from fastapi import FastAPI
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from elegance.version import VERSION
from elegance.api import routes_auth, routes_orders, routes_perfumes
from elegance.core import errors
from elegance.core.config import settings
from elegance.core.logging import configure_logging
from elegance.kafka.producer import EventPublisher
from elegance.payments.gateway import StripeGateway
from elegance.services.reconciliation import OrderReconciler

configure_logging(settings)
logger = structlog.get_logger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title='Elegance Store', version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

errors.install(app, production=settings.is_production)

publisher = EventPublisher(settings)
app.state.settings = settings
app.state.reconciler = OrderReconciler(settings, StripeGateway(settings), publisher)

@app.get('/health')
def health(): return {'status':'ok'}

@app.get('/v1/_info')
def info(): return {'service':'elegance-store','version':VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("route_registered", methods=sorted(route.methods), path=route.path)
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.warning("stripe_webhook_disabled")

@app.on_event("shutdown")
async def shutdown_event():
    publisher.close()

app.include_router(routes_auth.router, prefix='/api/auth', tags=['auth'])
app.include_router(routes_perfumes.router, prefix='/api/perfumes', tags=['perfumes'])
app.include_router(routes_orders.router, prefix='/api/orders', tags=['orders'])
