import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from country_trivia.config import config
from country_trivia.db import Database, get_session
from country_trivia.error import register_error_handler
from country_trivia.fetch import ExternalSources
from country_trivia.log import setup_logger
from country_trivia.render import SummaryRenderer
from country_trivia.schema import (
    CountryFilter,
    CountryResponseSchema,
    RefreshResponseSchema,
    StatusSchema,
)
from country_trivia.service import Service

logger = setup_logger(__name__, "app.log")

API_VERSION = "1.0.0"


@asynccontextmanager
async def life_span(app: FastAPI):
    # Startup
    database = Database(config.DATABASE_URL)
    try:
        await database.init()
        logger.info("database initialised")
    except Exception as e:
        logger.error(f"Error during database initialization: {str(e)}")
        await database.dispose()
        raise

    app.state.db = database
    app.state.sources = ExternalSources.from_config(config)
    app.state.renderer = SummaryRenderer(config.CACHE_DIR)
    app.state.refresh_lock = asyncio.Lock()
    app.state.rng = None

    yield  # Application is running

    # Shutdown
    await database.dispose()
    logger.info("server is ending.....")


app = FastAPI(title="Country Trivia API", version=API_VERSION, lifespan=life_span)

# register errors
register_error_handler(app)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service(request: Request, db: AsyncSession = Depends(get_session)):
    state = request.app.state
    return Service(
        db=db,
        sources=state.sources,
        renderer=state.renderer,
        refresh_lock=state.refresh_lock,
        rng=getattr(state, "rng", None),
    )


@app.get("/")
async def index():
    return {
        "message": "Country Trivia API",
        "version": API_VERSION,
        "endpoints": {
            "refresh": "POST /countries/refresh",
            "countries": "GET /countries",
            "country": "GET /countries/:name",
            "deleteCountry": "DELETE /countries/:name",
            "status": "GET /status",
            "image": "GET /countries/image",
        },
    }


@app.post("/countries/refresh", status_code=status.HTTP_200_OK)
# Fetch all countries and exchange rates, then cache them in the database
async def refresh_countries(service: Service = Depends(get_service)):
    result = await service.refresh()
    response = RefreshResponseSchema(
        countries_processed=result.countries_processed,
        last_refreshed_at=result.last_refreshed_at,
        warning=result.warning,
    )
    return response.model_dump(mode="json", exclude_none=True)


# /countries/image MUST come before /countries/{name}

@app.get("/countries")
# ?region=Africa | ?currency=NGN | ?sort=gdp_desc
async def get_countries(
    service: Service = Depends(get_service),
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
):
    filters = CountryFilter(region=region, currency=currency, sort=sort)
    countries = await service.filter_search(filters)
    return [CountryResponseSchema.model_validate(c).model_dump(mode="json") for c in countries]


@app.get("/countries/image")
# serve summary image
async def country_image(service: Service = Depends(get_service)):
    image = await service.serve_file()
    return FileResponse(image["file_path"], media_type="image/png", filename=image["file_name"])


@app.get("/countries/{name}")
async def get_country(name: str, service: Service = Depends(get_service)):
    country = await service.fetch_by_name(name)
    return CountryResponseSchema.model_validate(country).model_dump(mode="json")


@app.delete("/countries/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_country(name: str, service: Service = Depends(get_service)):
    await service.delete_country(name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/status")
# Show total countries and last refresh timestamp
async def get_status(service: Service = Depends(get_service)):
    metadata = await service.status()
    return StatusSchema.model_validate(metadata).model_dump(mode="json")
