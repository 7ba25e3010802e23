from prometheus_fastapi_instrumentator import Instrumentator

from bookshop import create_app
from bookshop.core.config import get_settings
from bookshop.core.logging import configure_logging

settings = get_settings()
configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
app = create_app(settings=settings)
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app)
