from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from sales_engine import __version__
from sales_engine.api.invoices_api import router as invoices_router
from sales_engine.api.rules_api import router as rules_router
from sales_engine.api.schemas import PriceRequest, PriceResponse
from sales_engine.api.state import Container, get_container
from sales_engine.config.settings import configure_logging
from sales_engine.engine.errors import NotFound

configure_logging()

app = FastAPI(
    title="Sales Engine API",
    description="Pricing rule resolution, tax splitting and invoicing",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rules_router)
app.include_router(invoices_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "Sales Engine API Active"}


@app.post("/pricing/resolve", response_model=PriceResponse)
async def resolve_price(req: PriceRequest, container: Container = Depends(get_container)):
    try:
        resolved = container.pricing.resolve_price(req.product_id, req.quantity, req.buyer_id)
        return PriceResponse.from_resolved(resolved)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/system/status")
async def get_status(container: Container = Depends(get_container)):
    settings = container.settings
    return {
        "engine_active": True,
        "rules_count": len(container.rule_store.all_rules()),
        "products_loaded": len(container.directory.products),
        "seller_jurisdiction": settings.seller_jurisdiction,
        "tax_rate": str(settings.tax_rate),
        "invoice_storage": "sql" if settings.database_url else "memory",
    }
