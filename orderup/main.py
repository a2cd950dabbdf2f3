import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.templating import Jinja2Templates
import segno

from .config import settings
from .db import dispose_engine, init_models
from .routes import router as api_router
from .routes.deps import get_order_service, get_shop_service
from .services.results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def _format_won(value: float | int | None) -> str:
    return f"{float(value or 0):,.0f}"


templates.env.filters["won"] = _format_won


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_models()
    logger.info("orderup started")
    yield
    await dispose_engine()
    logger.info("orderup stopped")


app = FastAPI(title="orderup", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/", include_in_schema=False)
async def home(request: Request):
    """Render the list of registered shops."""

    result = await get_shop_service().list_shops()
    return templates.TemplateResponse(
        request,
        "home.html",
        {
            "title": "orderup",
            "subtitle": "Order together, pay once",
            "shops": result.data if result.success else [],
        },
    )


@app.get("/order/{share_code}", include_in_schema=False, name="order_view")
async def order_view(request: Request, share_code: str):
    """Render the participant page for a session."""

    result = await get_order_service().describe(share_code)
    if not result.success:
        return _missing_session(request, share_code, result)

    share_url = str(request.url)
    return templates.TemplateResponse(
        request,
        "order.html",
        {
            "detail": result.data,
            "share_code": share_code,
            "share_url": share_url,
            "share_qr": segno.make_qr(share_url).png_data_uri(
                scale=4, dark="#1d5bdb", light="#f8fafc"
            ),
        },
    )


@app.get("/order/{share_code}/receipt", include_in_schema=False, name="receipt_view")
async def receipt_view(request: Request, share_code: str):
    """Render the printable merged receipt of a session."""

    result = await get_order_service().describe(share_code)
    if not result.success:
        return _missing_session(request, share_code, result)
    return templates.TemplateResponse(request, "receipt.html", {"detail": result.data})


def _missing_session(request: Request, share_code: str, result: OperationResult):
    return templates.TemplateResponse(
        request,
        "order.html",
        {"detail": None, "share_code": share_code, "message": result.message},
        status_code=404 if result.error == ErrorKind.NOT_FOUND else 502,
    )
