from __future__ import annotations


class CivicError(RuntimeError):
    status_code = 500
    public_message = "Se ha producido un error inesperado."


class Unauthorized(CivicError):
    """No resolvable caller identity."""

    status_code = 401
    public_message = "Debes iniciar sesión para continuar."


class PrivilegeRequired(CivicError):
    """Caller is authenticated but lacks the role the operation needs."""

    status_code = 403
    public_message = "No tienes permisos para realizar esta acción."


class ValidationError(CivicError):
    status_code = 400
    public_message = "Los datos enviados no son válidos."


class NotFound(CivicError):
    status_code = 404
    public_message = "El recurso solicitado no existe."


class StoreError(CivicError):
    """The relational store rejected or failed an operation."""

    status_code = 500
    public_message = "Error al guardar los cambios."


class AlreadyMember(StoreError):
    status_code = 409
    public_message = "Ya eres miembro de este núcleo."
