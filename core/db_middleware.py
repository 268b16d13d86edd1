from starlette.middleware.base import BaseHTTPMiddleware
from db.base import db


class DatabaseMiddleware(BaseHTTPMiddleware):
    """
    Connection for the event-loop thread while a request is handled.

    Peewee connections are thread-local, so this connects on the loop
    thread itself. Commands run in worker threads and open their own.
    """

    async def dispatch(self, request, call_next):
        opened = db.is_closed()
        if opened:
            db.connect()

        try:
            return await call_next(request)
        finally:
            if opened and not db.is_closed():
                db.close()
