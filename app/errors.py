"""
Errores del motor de torneos.

Cada error lleva un mensaje listo para mostrar; main.py los traduce a
respuestas HTTP (400, 409, 404, 500) con el mismo cuerpo que HTTPException.
"""


class TournamentError(Exception):
    """Base for every error raised by the fixture/advancement engine."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(TournamentError):
    """A precondition failed; nothing was written."""

    status_code = 400


class ConflictError(TournamentError):
    """The operation clashes with existing state (already generated, locked)."""

    status_code = 409


class NotFoundError(TournamentError):
    status_code = 404


class PartialFailure(TournamentError):
    """A multi-step generation failed after some rows were written."""

    status_code = 500
