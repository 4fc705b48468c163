from fastapi import FastAPI

from coldstore.config import settings
from coldstore.logging_config import configure_logging
from coldstore.routers import auth, gate_passes, ledger
from coldstore.security.sessions import install_auth_session_middleware

configure_logging(level=settings.log_level.upper())

app = FastAPI(title='Cold Storage Ledger')

install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(ledger.router)
app.include_router(gate_passes.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
