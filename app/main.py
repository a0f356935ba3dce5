import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from app.config import settings
from app.routers import catalog, orders

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Cafe Restock Portal')

app.include_router(catalog.router)
app.include_router(orders.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
