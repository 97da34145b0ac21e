import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contentlynk.config import settings
from contentlynk.db.database import init_db
from contentlynk.routes import posts, earnings

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger('contentlynk')


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup resources."""
    logger.info(f'Starting in {settings.platform_mode} mode')
    await init_db()
    yield


app = FastAPI(
    title='Contentlynk API',
    description='Creator earnings & engagement-integrity engine',
    version='0.1.0',
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

# Routes
app.include_router(posts.router, prefix='/api/posts', tags=['posts'])
app.include_router(earnings.router, prefix='/api/earnings', tags=['earnings'])


@app.get('/health')
async def health_check():
    """Health check endpoint."""
    return {'status': 'ok', 'service': 'contentlynk-api'}
