from app.routers import (
    tournaments_admin,
    tournaments_public,
)

__all__ = [
    "tournaments_admin",
    "tournaments_public",
]
