from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from glowglitch.core.config import settings
from glowglitch.core.errors import register_exception_handlers
from glowglitch.core.logging_config import configure_logging
import glowglitch.models  # noqa: F401  # force model registration

from glowglitch.api.v1.auth import router as auth_router
from glowglitch.api.v1.creators import router as creators_router
from glowglitch.api.v1.creator_links import router as creator_links_router
from glowglitch.api.v1.creator_payouts import router as creator_payouts_router
from glowglitch.api.v1.referrals import redirect_router, router as referrals_router
from glowglitch.api.v1.admin_creators import router as admin_creators_router
from glowglitch.api.v1.admin_commissions import router as admin_commissions_router
from glowglitch.api.v1.admin_orders import router as admin_orders_router
from glowglitch.api.v1.catalog import admin_router as admin_catalog_router, router as catalog_router
from glowglitch.api.v1.email_marketing.campaigns import router as campaigns_router
from glowglitch.api.v1.email_marketing.segments import router as segments_router
from glowglitch.api.v1.email_marketing.templates import router as templates_router
from glowglitch.api.v1.email_marketing.triggers import router as triggers_router
from glowglitch.api.v1.email_marketing.analytics import router as email_analytics_router


def create_application() -> FastAPI:
    configure_logging()
    app = FastAPI(title="GlowGlitch API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "glowglitch"}

    # Short links live at the storefront root, not under /api
    app.include_router(redirect_router)

    # Routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(creators_router, prefix="/api")
    app.include_router(creator_links_router, prefix="/api")
    app.include_router(creator_payouts_router, prefix="/api")
    app.include_router(referrals_router, prefix="/api")
    app.include_router(admin_creators_router, prefix="/api")
    app.include_router(admin_commissions_router, prefix="/api")
    app.include_router(admin_orders_router, prefix="/api")
    app.include_router(catalog_router, prefix="/api")
    app.include_router(admin_catalog_router, prefix="/api")
    app.include_router(campaigns_router, prefix="/api")
    app.include_router(segments_router, prefix="/api")
    app.include_router(templates_router, prefix="/api")
    app.include_router(triggers_router, prefix="/api")
    app.include_router(email_analytics_router, prefix="/api")

    return app


app = create_application()
